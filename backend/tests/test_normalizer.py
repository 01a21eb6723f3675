"""
RefMan Backend — Normalizer Unit Tests
========================================

What we test:
    ✅ Head fields, details and keywords are partitioned
    ✅ A caller-supplied id becomes the label and never reaches storage
    ✅ Overwrite null-fills absent head fields, create/patch does not
    ✅ Rebuilt records are sparse (empty values dropped, 0/False kept)
    ✅ Detail merge deletes keys sent as null
"""

from refman.services.normalizer import (
    decode_details,
    from_storage_shape,
    merge_details,
    normalize_keywords,
    to_storage_shape,
)


class TestToStorageShape:

    def test_partitions_record(self, sample_record):
        shape = to_storage_shape(sample_record, null_fill_missing=False)

        assert shape.head == {
            "title": "Eloquent JavaScript",
            "author": "Marijn Haverbeke",
            "publisher": "No Starch Press",
            "url": "https://eloquentjavascript.net/",
        }
        assert shape.details == {"year": 2018, "label": "eloquent-js"}
        assert shape.keywords == ["javascript", "programming"]

    def test_authors_joined_with_comma(self):
        shape = to_storage_shape({"title": "X", "author": ["A", "B"]}, null_fill_missing=False)
        assert shape.head["author"] == "A,B"

    def test_existing_label_wins_over_id(self):
        shape = to_storage_shape({"id": "x-2020", "label": "mine"}, null_fill_missing=False)
        assert shape.details == {"label": "mine"}

    def test_null_fill_for_overwrite(self):
        shape = to_storage_shape({"title": "Only title"}, null_fill_missing=True)
        assert shape.head == {"title": "Only title", "author": None, "publisher": None, "url": None}

    def test_no_null_fill_for_create(self):
        shape = to_storage_shape({"title": "Only title"}, null_fill_missing=False)
        assert shape.head == {"title": "Only title"}
        assert shape.keywords is None

    def test_details_blob_is_json(self):
        shape = to_storage_shape({"note": "café"}, null_fill_missing=False)
        assert decode_details(shape.details_blob) == {"note": "café"}
        assert "café" in shape.details_blob


class TestFromStorageShape:

    def test_rebuilds_wire_record(self):
        row = {
            "id": 7,
            "title": "SICP",
            "author": "Abelson,Sussman",
            "publisher": None,
            "url": "",
            "details": '{"year": 1985, "edition": 2}',
            "keywords": ["lisp", "scheme"],
        }

        assert from_storage_shape(row) == {
            "id": 7,
            "title": "SICP",
            "author": ["Abelson", "Sussman"],
            "year": 1985,
            "edition": 2,
            "keywords": ["lisp", "scheme"],
        }

    def test_joined_keyword_string_is_split(self):
        record = from_storage_shape({"id": 1, "details": "{}", "keywords": "a,b"})
        assert record["keywords"] == ["a", "b"]

    def test_head_wins_over_detail_collision(self):
        record = from_storage_shape({"id": 1, "title": "Head", "details": '{"title": "Detail"}'})
        assert record["title"] == "Head"

    def test_sparse_output_keeps_zero_and_false(self):
        record = from_storage_shape({
            "id": 1,
            "details": '{"pages": 0, "read": false, "notes": "", "tags": [], "extra": {}}',
            "keywords": None,
        })
        assert record == {"id": 1, "pages": 0, "read": False}

    def test_round_trip_moves_id_to_label(self, sample_record):
        shape = to_storage_shape(sample_record, null_fill_missing=False)
        row = {"id": 3, **shape.head, "details": shape.details_blob, "keywords": shape.keywords}

        record = from_storage_shape(row)

        assert record["id"] == 3
        assert record["label"] == "eloquent-js"
        assert record["author"] == ["Marijn Haverbeke"]


class TestHelpers:

    def test_merge_details_null_deletes(self):
        merged = merge_details({"year": 2018, "isbn": "123"}, {"isbn": None, "pages": 400})
        assert merged == {"year": 2018, "pages": 400}

    def test_normalize_keywords(self):
        assert normalize_keywords([" js ", "js", "", "  ", "web"]) == ["js", "web"]

    def test_decode_details_tolerates_empty(self):
        assert decode_details(None) == {}
        assert decode_details("") == {}

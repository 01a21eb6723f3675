# Services package init
"""
RefMan Backend — Services Layer
=================================

What:  Business logic between routes (HTTP) and storage.

Service Inventory:
    - normalizer:          wire record ⇄ head fields + details blob + keywords
    - store_base:          RecordStore / KeywordStore interfaces
    - sql_store:           SQLAlchemy implementations of those interfaces
    - keyword_reconciler:  keyword set bookkeeping (add, replace, prune, rename)
    - entry_service:       entry-level units of work for the relational backend
    - json_store:          flat-file backend, one JSON file per item
    - archive_service:     tar.gz export of the flat-file store
    - metadata_service:    web page metadata scraper (httpx + BeautifulSoup)
"""

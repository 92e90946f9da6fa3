"""
Services package for the ingestion engine

Parsing, classification, EPG, cache and orchestration components. Import
from the submodules directly; the public API is re-exported by iptv_ingest.
"""

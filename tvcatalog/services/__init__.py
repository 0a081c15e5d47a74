"""
Services package for the TV catalog

This package contains the ingestion, cache and scheduling components.
"""
from tvcatalog.errors import ExhaustedRetryError, FetchError, ParseError
from tvcatalog.services.cache_scheduler import CacheScheduler
from tvcatalog.services.cache_store import CacheStore
from tvcatalog.services.catalog_types import CatalogSnapshot, Channel, EPGIndex, Program
from tvcatalog.services.epg_ingestor import EPGIngestor
from tvcatalog.services.epg_scheduler import EPGScheduler
from tvcatalog.services.playlist_transformer import PlaylistTransformer

__all__ = [
    'CacheScheduler',
    'CacheStore',
    'CatalogSnapshot',
    'Channel',
    'EPGIndex',
    'EPGIngestor',
    'EPGScheduler',
    'ExhaustedRetryError',
    'FetchError',
    'ParseError',
    'PlaylistTransformer',
    'Program',
]

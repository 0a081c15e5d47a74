"""TV catalog service: playlist and EPG ingestion with a refreshed in-memory cache."""

__version__ = "0.1.0"

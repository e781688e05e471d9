"""Local full-text search index for cached mail messages."""

from mail_index.config import Settings, get_settings
from mail_index.search.bm25_engine import SearchPage
from mail_index.search.errors import (
    CommitFailureError,
    InvalidArgumentError,
    MailIndexError,
    StoreUnavailableError,
)
from mail_index.search_engine import IndexStats, MailSearchEngine, configure_observability, open_search_engine


__all__ = [
    "CommitFailureError",
    "IndexStats",
    "InvalidArgumentError",
    "MailIndexError",
    "MailSearchEngine",
    "SearchPage",
    "Settings",
    "StoreUnavailableError",
    "configure_observability",
    "get_settings",
    "open_search_engine",
]

"""Collaborator implementations: HTTP client and in-process table."""

from zync.integration.http_api import HttpApiError, HttpCollectionApi
from zync.integration.memory_api import InMemoryCollectionApi

__all__ = [
    "HttpApiError",
    "HttpCollectionApi",
    "InMemoryCollectionApi",
]

"""Reference REST backend for zync."""

from zync.server.app import create_app
from zync.server.table import RecordTable

__all__ = ["create_app", "RecordTable"]

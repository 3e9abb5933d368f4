"""zync CLI.

Inspect and manage the persisted state of a sync engine.

Usage:
    zync status          Queue size, watermarks, conflicts
    zync pending         Pending changes
    zync conflicts       Unresolved conflicts
    zync reset --yes     Drop persisted state
    zync serve           Run the reference backend
"""

from zync.cli.main import app, main

__all__ = ["app", "main"]

"""Database layer package.

Public re-exports so callers can write::

    from reviewcrawl.db import get_connection, init_db
    from reviewcrawl.db import reviews
"""

from reviewcrawl.db.connection import get_connection
from reviewcrawl.db.migrations import init_db
from reviewcrawl.db import reviews

__all__ = ["get_connection", "init_db", "reviews"]

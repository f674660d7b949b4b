"""Database lifecycle hooks.

A :class:`DB` installs and removes the system under test on a node.  Both
hooks succeed by default; subclasses override what they need::

    class SQLiteDB(DB):
        def setup(self, node):
            os.makedirs(workdir(node), exist_ok=True)
            return True
"""

from __future__ import annotations

from typing import Any


class DB:
    def setup(self, node: Any = None) -> bool:
        """Install and start the database on *node*."""
        return True

    def teardown(self, node: Any = None) -> bool:
        """Stop the database on *node* and remove its data."""
        return True

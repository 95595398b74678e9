"""Core business logic layer.

Subpackages:
- weeks: week identifiers, snapshot building and the lock/unlock lifecycle
- sync: reconciling the application state tree with the remote store
- migration: one-time idempotent transfer of local data into the remote tables
"""
__all__ = ["weeks", "sync", "migration"]

"""Row-level locking primitives used by the in-memory storage adapter."""

from storefront.locks.in_memory import LockInfo, LockNotHeldError, RowLockManager

__all__ = ["LockInfo", "LockNotHeldError", "RowLockManager"]

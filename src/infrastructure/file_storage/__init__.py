"""
File Storage Infrastructure Module

Object storage for uploaded resume files.

Exports:
    - LocalObjectStore: Filesystem object store (implements ObjectStoreProtocol)
"""

from .local_object_store import LocalObjectStore

__all__ = ["LocalObjectStore"]

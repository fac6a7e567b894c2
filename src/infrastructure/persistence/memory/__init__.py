"""
In-Memory Infrastructure Module

Exports:
    - InMemoryJobBroker: Single-process job broker
"""

from .job_broker import InMemoryJobBroker

__all__ = ["InMemoryJobBroker"]

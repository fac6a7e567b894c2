"""
Shared Domain Module

Shared domain concepts used across all subdomains (jobs, resumes).

This module exports:
    - DomainException: Base exception for all domain errors
"""

from .exceptions import DomainException

__all__ = [
    "DomainException",
]

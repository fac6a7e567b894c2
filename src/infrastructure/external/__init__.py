"""
External Services Infrastructure Module

Exports:
    - HttpJobFeedClient: External job-listing feed (implements JobFeedProtocol)
"""

from .job_feed_client import HttpJobFeedClient, normalize_listing

__all__ = ["HttpJobFeedClient", "normalize_listing"]

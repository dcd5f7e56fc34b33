"""
Client factories for the hosted store.

Provides shared access to:
- requests.Session used for the REST interface (connection pooling)
- RealtimeClient used for push channels, one per store URL and key
"""

import functools

import requests

from invoice_sync.lib.realtime import RealtimeClient


@functools.cache
def http_session() -> requests.Session:
    """
    Return the process-wide HTTP session.

    Returns:
        requests.Session with JSON accept headers.
    """
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    return session


@functools.cache
def realtime_client(base_url: str, api_key: str) -> RealtimeClient:
    """
    Return the realtime client for a store.

    Args:
        base_url: Store base URL.
        api_key: Public API key.

    Returns:
        Shared RealtimeClient; the socket opens on first channel.
    """
    return RealtimeClient(base_url, api_key)

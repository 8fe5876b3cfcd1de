"""
Network utilities for anitrack - HTTP client factory
"""
import httpx
import logging

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 6.1; Win64; rv:109.0) Gecko/20100101 Firefox/121.0"


def create_httpx_sync_client(**kwargs) -> httpx.Client:
    """
    Create an httpx synchronous Client.

    Args:
        **kwargs: Additional arguments for Client (timeout, headers, transport)

    Returns:
        Configured httpx.Client with the browser user agent the upstream API expects
    """
    headers = {"User-Agent": USER_AGENT}
    headers.update(kwargs.pop("headers", None) or {})
    return httpx.Client(headers=headers, **kwargs)

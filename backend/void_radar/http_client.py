"""
Async HTTP Client Configuration

Provides a shared httpx.AsyncClient with connection pooling and
timeout presets for each external service the gap pipeline touches.
"""

import httpx
from typing import Optional


# Timeout configurations (in seconds)
class Timeouts:
    """Timeout presets for external services."""
    DEXSCREENER = 10.0      # Market data search / token listing
    REGISTRY = 8.0          # Funded-project registry endpoints

    # Stage-level races: the whole sub-task gives up after this long
    CROSS_CHAIN_CATEGORY = 8.0
    SKEPTIC_PASS = 30.0


# Retry configuration
class RetryConfig:
    """Retry settings for the language-model call - one retry only."""
    MAX_RETRIES = 1

    # Retryable status codes
    RETRYABLE_CODES = {429, 500, 502, 503, 504}


# Shared client instance (lazily initialized)
_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, connect=5.0),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )
    return _client


async def close_client():
    """Close the shared client (call on app shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def get_timeout(service: str) -> httpx.Timeout:
    """Get timeout configuration for a service."""
    timeouts = {
        "dexscreener": Timeouts.DEXSCREENER,
        "registry": Timeouts.REGISTRY,
    }
    seconds = timeouts.get(service.lower(), 10.0)
    return httpx.Timeout(seconds, connect=5.0)


def is_retryable_error(status_code: int) -> bool:
    """Check if an HTTP error is retryable."""
    return status_code in RetryConfig.RETRYABLE_CODES

"""HTTP client factory for external API calls.

Provides per-service HTTP clients with connection pooling, timeouts,
and proper resource management.
"""

import httpx

# Default timeout configuration (seconds)
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 5.0

# Module-level client storage for singleton pattern
_identity_client: httpx.AsyncClient | None = None


def create_http_client(
    base_url: str = "",
    max_connections: int = 20,
    max_keepalive_connections: int = 10,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    write_timeout: float = DEFAULT_WRITE_TIMEOUT,
    pool_timeout: float = DEFAULT_POOL_TIMEOUT,
) -> httpx.AsyncClient:
    """Create a configured async HTTP client.

    Args:
        base_url: Base URL for all requests (empty string for none)
        max_connections: Maximum number of concurrent connections
        max_keepalive_connections: Maximum idle connections to keep alive
        connect_timeout: Timeout for establishing connection
        read_timeout: Timeout for reading response
        write_timeout: Timeout for sending request
        pool_timeout: Timeout for acquiring connection from pool

    Returns:
        Configured httpx.AsyncClient instance
    """
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=pool_timeout,
        ),
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
        ),
    )


def get_identity_client() -> httpx.AsyncClient:
    """Get singleton HTTP client for the identity provider.

    Shared by Identity Toolkit (sign-in, lookup) and Secure Token (refresh)
    calls, so requests use absolute URLs and the client has no base_url.
    Close it via close_identity_client() during shutdown.

    Returns:
        Configured httpx.AsyncClient instance for identity provider calls
    """
    global _identity_client
    if _identity_client is None:
        _identity_client = create_http_client(
            max_connections=20,
            max_keepalive_connections=5,
        )
    return _identity_client


async def close_identity_client() -> None:
    """Close the identity provider HTTP client and release resources."""
    global _identity_client
    if _identity_client is not None:
        await _identity_client.aclose()
        _identity_client = None

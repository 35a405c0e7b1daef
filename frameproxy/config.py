"""Default settings for the frame router.

Every key can be overridden from the environment with a ``FRAMEPROXY_``
prefix, e.g. ``FRAMEPROXY_UPSTREAM_TIMEOUT=10``.
"""

MOBILE_SAFARI_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/15.0 Mobile/15E148 Safari/604.1"
)


class Config:

    # --- upstream ---
    UPSTREAM_TIMEOUT = 30
    MAX_REDIRECTS = 10
    UPSTREAM_USER_AGENT = MOBILE_SAFARI_UA
    RELAY_CHUNK_SIZE = 8192

    # Externally visible scheme+host of this router. None means "use the
    # host the request came in on".
    PROXY_ORIGIN = None

    # --- request accounting ---
    REQUEST_LOG_LIMIT = 50
    REQUEST_LOG_CAPACITY = 1000

    # --- logging ---
    LOG_FILE = None
    LOG_LEVEL = "INFO"

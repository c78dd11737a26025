# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.policy",
#   "purpose": "HTTP policy constants and defaults for the page fetcher.",
#   "sections": []
# }
# === /NAVMAP ===

"""HTTP policy constants and defaults.

Defines timeout budgets, connection pooling limits, politeness spacing, and
idle-connection reclamation intervals for the page fetcher. The values mirror
long-running crawl deployments: generous timeouts, a shallow politeness delay,
and a pool wide enough for many concurrent crawl workers.
"""

# ============================================================================
# Timeout Budgets (seconds)
# ============================================================================

#: Connection establishment timeout; also bounds waiting for a free pool slot
CONNECT_TIMEOUT = 30.0

#: Socket (read/write) timeout between data packets on an established connection
SOCKET_TIMEOUT = 20.0


# ============================================================================
# Politeness & Size Limits
# ============================================================================

#: Minimum spacing between the start of successive requests (seconds)
POLITENESS_DELAY = 0.2

#: Maximum response body size accepted for a page (bytes)
MAX_DOWNLOAD_SIZE = 1_048_576


# ============================================================================
# Connection Pooling
# ============================================================================

#: Maximum concurrent connections across all hosts
MAX_TOTAL_CONNECTIONS = 100

#: Maximum concurrent connections to a single (scheme, host, port)
MAX_CONNECTIONS_PER_HOST = 100


# ============================================================================
# Idle Connection Reclamation
# ============================================================================

#: How often the reaper sweeps the pool (seconds)
REAPER_INTERVAL = 5.0

#: Idle connections older than this are closed (seconds)
IDLE_CONNECTION_TIMEOUT = 30.0

#: Connections older than this are closed once idle, regardless of use (seconds)
CONNECTION_MAX_LIFETIME = 300.0


# ============================================================================
# Response Classification
# ============================================================================

#: Status codes surfaced as redirects (never followed transparently)
REDIRECT_STATUS_CODES = frozenset({300, 301, 302, 303, 307, 308})

#: Redirects are classified by the pipeline, not followed by HTTPX
FOLLOW_REDIRECTS = False


# ============================================================================
# User-Agent
# ============================================================================

#: Project URL for user-agent (where site operators can reach the crawler owner)
PROJECT_URL = "https://crawlkit.example.org/bot"

USER_AGENT = f"CrawlKit/PageFetch (+{PROJECT_URL})"


__all__ = [
    "CONNECT_TIMEOUT",
    "SOCKET_TIMEOUT",
    "POLITENESS_DELAY",
    "MAX_DOWNLOAD_SIZE",
    "MAX_TOTAL_CONNECTIONS",
    "MAX_CONNECTIONS_PER_HOST",
    "REAPER_INTERVAL",
    "IDLE_CONNECTION_TIMEOUT",
    "CONNECTION_MAX_LIFETIME",
    "REDIRECT_STATUS_CODES",
    "FOLLOW_REDIRECTS",
    "PROJECT_URL",
    "USER_AGENT",
]

"""
API Module
==========

Request/response clients that sit beside the stream:
    - SearchClient: Rate-limited search and counts
    - RulesClient: Stream rule management
    - UsageClient: Account usage statistics
    - RateLimiter: Token bucket shared by search clients
"""

from gnip_stream.api.rate_limiter import (
    RateLimiter,
    get_default_rate_limiter,
    set_default_rate_limiter,
)
from gnip_stream.api.base import ApiClient
from gnip_stream.api.search import SearchClient
from gnip_stream.api.rules import Rule, RulesClient
from gnip_stream.api.usage import UsageClient

__all__ = [
    "RateLimiter",
    "get_default_rate_limiter",
    "set_default_rate_limiter",
    "ApiClient",
    "SearchClient",
    "Rule",
    "RulesClient",
    "UsageClient",
]

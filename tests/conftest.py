"""
Test Configuration
==================

Pytest fixtures and test configuration for gnip_stream.
"""

import pytest

from gnip_stream.api.rate_limiter import set_default_rate_limiter
from gnip_stream.config import StreamConfig

from helpers import STREAM_URL


@pytest.fixture
def stream_config():
    """Provide a valid StreamConfig for testing."""
    return StreamConfig(
        url=STREAM_URL,
        user="user@example.com",
        password="s3cret",
        user_agent="gnip-stream-tests/1.0",
    )


@pytest.fixture
def sample_tweet():
    """Provide a sample activity with a 64-bit identifier."""
    return {
        "id": "tag:search.twitter.com,2005:1234567890123456789",
        "body": "hello stream {not a brace} \"quoted\"",
        "actor": {"id": 9007199254740993, "displayName": "Ünïcode"},
    }


@pytest.fixture(autouse=True)
def fresh_default_rate_limiter():
    """Keep the process-wide search limiter from leaking between tests."""
    set_default_rate_limiter(None)
    yield
    set_default_rate_limiter(None)

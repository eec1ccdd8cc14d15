"""
Pytest configuration for MountPro tests.

Environment variables are set at import time so the first `get_config()`
call in any test already sees the test settings.
"""
import os

import pytest

os.environ["ENVIRONMENT"] = "testing"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["GROQ_API_KEY"] = ""
os.environ["FETCH_DEBOUNCE_SECONDS"] = "0.05"


@pytest.fixture(autouse=True)
def reset_state():
    """Re-read configuration and drop in-memory metrics around every test."""
    from mountpro.config import reset_config
    from mountpro.src import metrics

    reset_config()
    metrics.reset()
    metrics.set_redis_client(None)
    yield
    reset_config()
    metrics.reset()
    metrics.set_redis_client(None)

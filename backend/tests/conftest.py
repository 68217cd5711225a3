"""
Shared fixtures.

The API tests issue many loads from one client address; the limit is raised
before the app and its settings are imported.
"""
import os

os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

import pandas as pd
import pytest

from dashboard.core.sessions import get_session_store
from dashboard.services.loader import generate_sample_data


@pytest.fixture
def sample_df():
    return generate_sample_data()


@pytest.fixture
def mixed_df():
    """Two numeric columns, one text column and a group with a missing value."""
    return pd.DataFrame({
        "city": ["Leeds", "York", "Leeds", "Hull", "York"],
        "score": [1.0, 2.0, 3.0, None, 5.0],
        "count": [10, 20, 30, 40, 50],
        "team": ["a", "b", "a", None, "b"],
    })


@pytest.fixture(autouse=True)
def clear_sessions():
    yield
    get_session_store().clear()

import os

import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep a developer's CLAIMSINK_* environment out of the tests."""
    for k in list(os.environ):
        if k.startswith("CLAIMSINK_"):
            monkeypatch.delenv(k, raising=False)

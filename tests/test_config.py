from __future__ import annotations

import pydantic
import pytest

from claimsink.config import Settings


def test_reads_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("CLAIMSINK_LOTUS_URL", "http://lotus:1234/rpc/v1")
    monkeypatch.setenv("CLAIMSINK_DATABASE_URL", "postgresql://u:secret@db/claims")
    monkeypatch.setenv("CLAIMSINK_BATCH_SIZE", "500")
    monkeypatch.setenv("CLAIMSINK_SKIP_MALFORMED_RECORDS", "true")
    s = Settings(_env_file=None)
    assert s.lotus_url == "http://lotus:1234/rpc/v1"
    assert s.batch_size == 500
    assert s.skip_malformed_records is True
    assert s.stable_check_interval_s == 5.0 and s.stable_check_retries == 3
    assert s.run_interval_s == 3600.0


def test_required_settings() -> None:
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None)


def test_nonpositive_interval_falls_back_to_hourly() -> None:
    s = Settings(_env_file=None, lotus_url="http://l", database_url="postgresql://d", run_every_hours=0)
    assert s.run_every_hours == 1.0


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None, lotus_url="http://l", database_url="postgresql://d", batch_size=0)


def test_settings_are_frozen_and_secrets_stay_out_of_logs() -> None:
    s = Settings(_env_file=None, lotus_url="http://l", lotus_token="jwt", database_url="postgresql://u:pw@d/x")
    with pytest.raises(pydantic.ValidationError):
        s.batch_size = 10
    view = s.public_view()
    assert "lotus_token" not in view and "database_url" not in view
    assert "jwt" not in repr(s) and "pw" not in repr(s)

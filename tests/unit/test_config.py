import logging

import pytest

from privacymetrics.config import validate_ops_rules
from privacymetrics.rules.models import IngestRules, OpsRules, Rules


def make_rules(required_env: list[str]) -> Rules:
    return Rules(
        ingest=IngestRules(allowed_event_types=["pageview"], salt_env_var="PM_TEST_SALT"),
        ops=OpsRules(required_env=required_env),
    )


def test_missing_required_env(monkeypatch):
    monkeypatch.delenv("PM_TEST_REQUIRED", raising=False)
    with pytest.raises(RuntimeError, match="PM_TEST_REQUIRED"):
        validate_ops_rules(make_rules(["PM_TEST_REQUIRED"]))


def test_present_required_env(monkeypatch):
    monkeypatch.setenv("PM_TEST_REQUIRED", "1")
    monkeypatch.setenv("PM_TEST_SALT", "s3cret")
    validate_ops_rules(make_rules(["PM_TEST_REQUIRED"]))


def test_warns_without_salt(monkeypatch, caplog):
    monkeypatch.delenv("PM_TEST_SALT", raising=False)
    with caplog.at_level(logging.WARNING, logger="privacymetrics.config"):
        validate_ops_rules(make_rules([]))
    assert "PM_TEST_SALT" in caplog.text

from pathlib import Path

import pytest

from privacymetrics.rules.loader import load_rules

VALID_RULES = """
ingest:
  allowed_event_types: [pageview, click]
  max_batch_size: 50
"""


def test_load_project_rules(rules):
    assert "pageview" in rules.ingest.allowed_event_types
    assert rules.tracker.batch_size == 10
    assert rules.aggregation.rollup_cache_enabled is True


def test_defaults_fill_optional_sections(tmp_path: Path):
    path = tmp_path / "rules.yaml"
    path.write_text(VALID_RULES)

    rules = load_rules(path)

    assert rules.ingest.max_batch_size == 50
    assert rules.ingest.session_timeout_minutes == 30
    assert rules.aggregation.max_days == 365
    assert rules.tracker.flush_interval_seconds == 5.0
    assert rules.ops.required_env == []


def test_fenced_markdown(tmp_path: Path):
    path = tmp_path / "rules.md"
    path.write_text(f"# Rules\n\n```yaml{VALID_RULES}```\n\nTrailing notes.\n")

    assert load_rules(path).ingest.allowed_event_types == ["pageview", "click"]


def test_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_rules(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path: Path):
    path = tmp_path / "rules.yaml"
    path.write_text("ingest: [unclosed")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_rules(path)


def test_pageview_is_required(tmp_path: Path):
    path = tmp_path / "rules.yaml"
    path.write_text("ingest:\n  allowed_event_types: [click]\n")
    with pytest.raises(ValueError, match="pageview"):
        load_rules(path)


def test_bounds_are_validated(tmp_path: Path):
    path = tmp_path / "rules.yaml"
    path.write_text("ingest:\n  allowed_event_types: [pageview]\n  max_batch_size: 0\n")
    with pytest.raises(ValueError, match="validation failed"):
        load_rules(path)

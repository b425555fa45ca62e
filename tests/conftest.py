"""Shared test fixtures."""
import os
import sys
import json
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database

SAMPLE_RULES = """\
# Alert rules consumed by the crew portal alerting jobs.

rules:
  PENDING_REQUESTS:
    threshold: 10
    timeout_hours: 24  # escalate after a day
    description: "Triggers when there are too many pending user requests."

  PENDING_DOC_VALIDATIONS:
    threshold: 5
    timeout_hours: 48
    description: "Triggers when user-submitted documents are awaiting validation for too long."

  FAILED_SWAPS:
    threshold: 3
    description: "Triggers on multiple consecutive failed flight swap attempts."
"""


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    os.unlink(db_path)


@pytest.fixture
def rules_file(tmp_path):
    """A rule table file with the three standard rules."""
    path = tmp_path / "alert_rules.yaml"
    path.write_text(SAMPLE_RULES, encoding="utf-8")
    return path


@pytest.fixture
def report_path(tmp_path):
    return tmp_path / "suggested-optimizations.json"


@pytest.fixture
def make_report(report_path):
    """Write a report file from a list of optimization dicts."""
    def _make(optimizations):
        report_path.write_text(json.dumps({"optimizations": optimizations}), encoding="utf-8")
        return report_path
    return _make


@pytest.fixture
def cli_env(monkeypatch, tmp_path, rules_file, report_path):
    """Point the CLI at temporary rule table, report and database files."""
    db_path = tmp_path / "alerts.db"
    monkeypatch.setenv("CREW_ALERTS_RULES_PATH", str(rules_file))
    monkeypatch.setenv("CREW_ALERTS_REPORT_PATH", str(report_path))
    monkeypatch.setenv("CREW_ALERTS_DB_PATH", str(db_path))
    return {"rules": rules_file, "report": report_path, "db": db_path}

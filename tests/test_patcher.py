"""Tests for applying optimization reports to the rule table."""
import pytest
import yaml

from alerts.patcher import RulePatcher, find_rule_block, find_field_line
from alerts.report import ReportError
from alerts.rules_manager import RuleTableError
from models.alerts import OptimizationReport, ProposedRule, RuleOptimization
from models.enums import PatchStatus
from conftest import SAMPLE_RULES


def _opt(key, threshold, timeout_hours=None):
    return RuleOptimization(key=key, new_rule=ProposedRule(threshold=threshold, timeout_hours=timeout_hours))


def _rules(path):
    return yaml.safe_load(path.read_text())["rules"]


# ── Threshold / timeout updates ─────────────────────────

def test_threshold_only_patch(rules_file, make_report):
    report = make_report([{"key": "FAILED_SWAPS", "newRule": {"threshold": 5}}])
    result = RulePatcher(rules_file).apply_report_file(report)

    assert result.written is True
    assert rules_file.read_text() == SAMPLE_RULES.replace("threshold: 3", "threshold: 5")
    rules = _rules(rules_file)
    assert rules["FAILED_SWAPS"]["threshold"] == 5
    assert "timeout_hours" not in rules["FAILED_SWAPS"]
    assert rules["PENDING_REQUESTS"]["threshold"] == 10
    assert rules["PENDING_DOC_VALIDATIONS"]["threshold"] == 5


def test_timeout_patch_keeps_inline_comment(rules_file):
    report = OptimizationReport(optimizations=[_opt("PENDING_REQUESTS", 8, 12)])
    result = RulePatcher(rules_file).apply_report(report)

    assert [o.status for o in result.outcomes] == [PatchStatus.UPDATED, PatchStatus.UPDATED]
    text = rules_file.read_text()
    assert "    threshold: 8\n" in text
    assert "    timeout_hours: 12  # escalate after a day\n" in text
    assert text.startswith("# Alert rules consumed by the crew portal alerting jobs.\n")


def test_float_value_written_as_number(rules_file):
    RulePatcher(rules_file).apply_report(OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 2.5)]))
    assert _rules(rules_file)["FAILED_SWAPS"]["threshold"] == 2.5


# ── Scoping ─────────────────────────────────────────────

def test_prefix_sharing_keys_patched_independently(rules_file):
    patcher = RulePatcher(rules_file)
    patcher.apply_report(OptimizationReport(optimizations=[_opt("PENDING_REQUESTS", 8)]))

    rules = _rules(rules_file)
    assert rules["PENDING_REQUESTS"]["threshold"] == 8
    assert rules["PENDING_DOC_VALIDATIONS"]["threshold"] == 5

    patcher.apply_report(OptimizationReport(optimizations=[_opt("PENDING_DOC_VALIDATIONS", 7)]))
    rules = _rules(rules_file)
    assert rules["PENDING_REQUESTS"]["threshold"] == 8
    assert rules["PENDING_DOC_VALIDATIONS"]["threshold"] == 7


def test_key_that_is_prefix_of_earlier_key(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n"
        "  PENDING_REQUESTS_V2:\n"
        "    threshold: 20\n"
        "  PENDING_REQUESTS:\n"
        "    threshold: 10\n"
    )
    RulePatcher(path).apply_report(OptimizationReport(optimizations=[_opt("PENDING_REQUESTS", 4)]))
    rules = _rules(path)
    assert rules["PENDING_REQUESTS_V2"]["threshold"] == 20
    assert rules["PENDING_REQUESTS"]["threshold"] == 4


def test_braces_in_description_do_not_affect_scope(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n"
        "  FAILED_SWAPS:\n"
        "    description: \"closes } early { threshold: 99\"\n"
        "    threshold: 3\n"
        "  OTHER:\n"
        "    threshold: 1\n"
    )
    RulePatcher(path).apply_report(OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 6)]))
    rules = _rules(path)
    assert rules["FAILED_SWAPS"]["threshold"] == 6
    assert rules["FAILED_SWAPS"]["description"] == "closes } early { threshold: 99"
    assert rules["OTHER"]["threshold"] == 1


def test_find_rule_block_quoted_key():
    lines = ['rules:\n', '  "FAILED_SWAPS":\n', '    threshold: 3\n']
    block = find_rule_block(lines, "FAILED_SWAPS")
    assert block == (2, 3, 4)
    index, m = find_field_line(lines, block, "threshold")
    assert index == 2
    assert m.group("value") == "3"


def test_find_rule_block_ignores_keys_outside_rules():
    lines = ["other:\n", "  FAILED_SWAPS:\n", "    threshold: 3\n", "rules:\n", "  A:\n", "    threshold: 1\n"]
    assert find_rule_block(lines, "FAILED_SWAPS") is None
    assert find_rule_block(lines, "A") == (5, 6, 4)


# ── Warnings ────────────────────────────────────────────

def test_unknown_key_warns_and_applies_others(rules_file, caplog):
    report = OptimizationReport(optimizations=[_opt("NO_SUCH_RULE", 1), _opt("FAILED_SWAPS", 4)])
    with caplog.at_level("WARNING", logger="crewalerts"):
        result = RulePatcher(rules_file).apply_report(report)

    statuses = {o.key: o.status for o in result.outcomes}
    assert statuses["NO_SUCH_RULE"] == PatchStatus.NOT_FOUND
    assert statuses["FAILED_SWAPS"] == PatchStatus.UPDATED
    assert "NO_SUCH_RULE" in caplog.text
    assert _rules(rules_file)["FAILED_SWAPS"]["threshold"] == 4


def test_timeout_not_added_where_absent(rules_file):
    report = OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 5, timeout_hours=6)])
    result = RulePatcher(rules_file).apply_report(report)

    assert result.outcomes[0].status == PatchStatus.FIELD_MISSING
    assert result.written is False
    assert rules_file.read_text() == SAMPLE_RULES


def test_invalid_values_rejected(rules_file):
    report = OptimizationReport(optimizations=[
        _opt("FAILED_SWAPS", -1),
        _opt("PENDING_REQUESTS", 10, timeout_hours=0),
    ])
    result = RulePatcher(rules_file).apply_report(report)
    assert [o.status for o in result.outcomes] == [PatchStatus.INVALID, PatchStatus.INVALID]
    assert rules_file.read_text() == SAMPLE_RULES


def test_non_numeric_table_value_skips_only_that_key(tmp_path):
    path = tmp_path / "rules.yaml"
    text = (
        "rules:\n"
        "  A:\n"
        "    threshold: 3\n"
        '    timeout_hours: "24"\n'
        "  B:\n"
        "    threshold: 1\n"
    )
    path.write_text(text)
    report = OptimizationReport(optimizations=[_opt("A", 5), _opt("B", 2)])
    result = RulePatcher(path).apply_report(report)

    assert result.outcomes[0].status == PatchStatus.INVALID
    assert result.outcomes[1].status == PatchStatus.UPDATED
    rules = _rules(path)
    assert rules["A"] == {"threshold": 3, "timeout_hours": "24"}
    assert rules["B"]["threshold"] == 2


# ── Idempotence / no-op ─────────────────────────────────

def test_matching_values_do_not_touch_file(rules_file):
    before = rules_file.stat().st_mtime_ns
    report = OptimizationReport(optimizations=[
        _opt("PENDING_REQUESTS", 10, 24),
        _opt("FAILED_SWAPS", 3.0),
    ])
    result = RulePatcher(rules_file).apply_report(report)

    assert result.written is False
    assert all(o.status == PatchStatus.UNCHANGED for o in result.outcomes)
    assert rules_file.read_text() == SAMPLE_RULES
    assert rules_file.stat().st_mtime_ns == before


def test_second_application_is_noop(rules_file, make_report):
    report = make_report([{"key": "PENDING_REQUESTS", "newRule": {"threshold": 8, "timeoutHours": 12}}])
    patcher = RulePatcher(rules_file)
    assert patcher.apply_report_file(report).written is True
    patched = rules_file.read_text()

    again = patcher.apply_report_file(report)
    assert again.written is False
    assert rules_file.read_text() == patched


def test_missing_report_is_noop(rules_file, report_path):
    result = RulePatcher(rules_file).apply_report_file(report_path)
    assert result.report_found is False
    assert result.outcomes == []
    assert rules_file.read_text() == SAMPLE_RULES


def test_empty_report_does_not_read_rules(tmp_path, make_report):
    report = make_report([])
    result = RulePatcher(tmp_path / "missing.yaml").apply_report_file(report)
    assert result.report_found is True
    assert result.outcomes == []


def test_crlf_line_endings_preserved(rules_file):
    rules_file.write_bytes(SAMPLE_RULES.replace("\n", "\r\n").encode())
    RulePatcher(rules_file).apply_report(OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 5)]))
    data = rules_file.read_bytes()
    assert b"    threshold: 5\r\n" in data
    assert b"\n" not in data.replace(b"\r\n", b"")


# ── Fatal errors ────────────────────────────────────────

def test_malformed_report_raises(rules_file, report_path):
    report_path.write_text("{not json")
    with pytest.raises(ReportError):
        RulePatcher(rules_file).apply_report_file(report_path)
    assert rules_file.read_text() == SAMPLE_RULES


def test_unreadable_rule_table_raises(tmp_path):
    report = OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 5)])
    with pytest.raises(OSError):
        RulePatcher(tmp_path / "missing.yaml").apply_report(report)


def test_verification_failure_writes_nothing(tmp_path):
    path = tmp_path / "rules.yaml"
    # Duplicate key: YAML keeps the last block, text matching finds the first.
    original = (
        "rules:\n"
        "  FAILED_SWAPS:\n"
        "    threshold: 1\n"
        "  FAILED_SWAPS:\n"
        "    threshold: 2\n"
    )
    path.write_text(original)
    with pytest.raises(RuleTableError):
        RulePatcher(path).apply_report(OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 7)]))
    assert path.read_text() == original


def test_lock_file_created_beside_rules(rules_file):
    RulePatcher(rules_file).apply_report(OptimizationReport(optimizations=[_opt("FAILED_SWAPS", 5)]))
    assert rules_file.with_name(rules_file.name + ".lock").exists()

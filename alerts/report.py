"""Optimization report persistence (suggested rule changes as JSON)."""
import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path

from models.alerts import OptimizationReport, ProposedRule, RuleOptimization
from utils.fileio import write_text_atomic

logger = logging.getLogger("crewalerts.report")


class ReportError(Exception):
    """The optimization report exists but cannot be understood."""


def write_report(path, optimizations, generated_at=None):
    """Persist proposals to path, replacing any previous report."""
    report = OptimizationReport(
        optimizations=list(optimizations),
        generated_at=generated_at or datetime.now(timezone.utc),
    )
    write_text_atomic(path, json.dumps(report.to_dict(), indent=2) + "\n")
    logger.info(f"Wrote {len(report.optimizations)} optimization(s) to {path}")
    return report


def load_report(path):
    """Read a report from path. Returns None if there is no report file."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info(f"No optimization report at {path}")
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ReportError(f"Malformed report JSON in {path}: {e}") from e
    return parse_report(data)


def _number(value, what):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ReportError(f"{what} must be a number (got {value!r})")
    if not math.isfinite(value):
        raise ReportError(f"{what} must be finite (got {value!r})")
    return value


def _parse_rule(raw, what):
    if not isinstance(raw, dict):
        raise ReportError(f"{what} must be an object")
    if "threshold" not in raw:
        raise ReportError(f"{what} is missing 'threshold'")
    timeout = raw.get("timeoutHours")
    return ProposedRule(
        threshold=_number(raw["threshold"], f"{what}.threshold"),
        timeout_hours=_number(timeout, f"{what}.timeoutHours") if timeout is not None else None,
    )


def parse_report(data):
    if not isinstance(data, dict):
        raise ReportError("Report must be a JSON object")
    raw_items = data.get("optimizations") or []
    if not isinstance(raw_items, list):
        raise ReportError("'optimizations' must be a list")

    optimizations = []
    for i, item in enumerate(raw_items):
        if not isinstance(item, dict):
            raise ReportError(f"optimizations[{i}] must be an object")
        key = item.get("key")
        if not isinstance(key, str) or not key:
            raise ReportError(f"optimizations[{i}] is missing 'key'")
        optimizations.append(RuleOptimization(
            key=key,
            new_rule=_parse_rule(item.get("newRule"), f"optimizations[{i}].newRule"),
            old_rule=_parse_rule(item["oldRule"], f"optimizations[{i}].oldRule") if item.get("oldRule") else None,
            reason=item.get("reason", "") or "",
        ))

    generated_at = None
    if data.get("generatedAt"):
        try:
            generated_at = datetime.fromisoformat(data["generatedAt"])
        except (TypeError, ValueError) as e:
            raise ReportError(f"Invalid generatedAt: {data['generatedAt']!r}") from e

    return OptimizationReport(optimizations=optimizations, generated_at=generated_at)

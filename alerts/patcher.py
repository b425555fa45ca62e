"""Apply an optimization report to the alert rule table.

The rule table is a YAML document that people also edit by hand, so it is
never re-serialized. Each proposed value is written by replacing only the
numeral on the matching ``<field>: <number>`` line inside the rule's block,
which keeps comments, ordering and quoting intact. The edited text is then
parsed again and must equal the structured merge of the old table and the
proposals, otherwise nothing is written.

Blocks are located by indentation under the top-level ``rules:`` key, so a
key only ever matches its own block (``PENDING_REQUESTS`` cannot match
``PENDING_REQUESTS_V2``) and description text cannot change the scoping.
"""
import copy
import logging
import re
from pathlib import Path

import yaml

from alerts.report import load_report
from alerts.rules_manager import RuleTableError, _as_number, rules_section
from models.alerts import AlertRule, PatchOutcome, PatchResult
from models.enums import PatchStatus, RuleField
from utils.fileio import file_lock, write_text_atomic
from utils.formatters import format_number

logger = logging.getLogger("crewalerts.patcher")

_RULES_HEADER = re.compile(r"^rules\s*:\s*(#.*)?$")
_NUMBER = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"


def _indent(line):
    return len(line) - len(line.lstrip(" "))


def _is_content(line):
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


def _split_eol(line):
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def _yaml_number(value):
    text = format_number(value)
    # PyYAML only reads exponent floats that have a dot in the mantissa
    mantissa, sep, exponent = text.partition("e")
    if sep and "." not in mantissa:
        text = f"{mantissa}.0e{exponent}"
    return text


def _block_end(lines, start, parent_indent):
    """Index of the first content line after start indented <= parent_indent."""
    for i in range(start, len(lines)):
        if _is_content(lines[i]) and _indent(lines[i]) <= parent_indent:
            return i
    return len(lines)


def _first_content(lines, start, end):
    for i in range(start, end):
        if _is_content(lines[i]):
            return i
    return None


def find_rule_block(lines, key):
    """Return (start, end, field_indent) of the body of rule ``key``, or None."""
    header = next(
        (i for i, line in enumerate(lines) if _indent(line) == 0 and _RULES_HEADER.match(_split_eol(line)[0])),
        None,
    )
    if header is None:
        return None
    section_end = _block_end(lines, header + 1, 0)
    first = _first_content(lines, header + 1, section_end)
    if first is None:
        return None
    child_indent = _indent(lines[first])

    key_line = re.compile(
        r"^ {%d}(?P<q>[\"']?)%s(?P=q)\s*:\s*(#.*)?$" % (child_indent, re.escape(key))
    )
    for i in range(first, section_end):
        if key_line.match(_split_eol(lines[i])[0]):
            end = _block_end(lines, i + 1, child_indent)
            body = _first_content(lines, i + 1, end)
            if body is None:
                return None
            return i + 1, end, _indent(lines[body])
    return None


def find_field_line(lines, block, field):
    """Return (index, match) of ``field: <number>`` directly inside block, or None."""
    start, end, field_indent = block
    pattern = re.compile(
        r"^(?P<prefix> {%d}%s\s*:\s*)(?P<value>%s)(?P<suffix>\s*(?:#.*)?)$"
        % (field_indent, re.escape(field), _NUMBER)
    )
    for i in range(start, end):
        m = pattern.match(_split_eol(lines[i])[0])
        if m:
            return i, m
    return None


def _same(current, new):
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        return False
    return float(current) == float(new)


class RulePatcher:
    def __init__(self, rules_path="config/alert_rules.yaml"):
        self.rules_path = Path(rules_path)

    def apply_report_file(self, report_path):
        """Load the report at report_path and apply it. A missing report is a no-op."""
        report = load_report(report_path)
        if report is None:
            logger.info("No optimization report file found. Skipping application.")
            return PatchResult(report_found=False)
        return self.apply_report(report)

    def apply_report(self, report):
        if not report.optimizations:
            logger.info("No optimizations to apply.")
            return PatchResult()

        with file_lock(self.rules_path):
            with open(self.rules_path, encoding="utf-8", newline="") as f:
                text = f.read()
            new_text, outcomes = self.patch_text(text, report.optimizations)
            result = PatchResult(outcomes=outcomes)
            if new_text != text:
                write_text_atomic(self.rules_path, new_text)
                result.written = True
                logger.info(f"Applied {len(result.updated)} change(s) to {self.rules_path}")
            else:
                logger.info("No applicable changes were made to the rules file.")
        return result

    def patch_text(self, text, optimizations):
        """Apply optimizations to rule table text. Returns (new_text, outcomes)."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RuleTableError(f"Cannot parse {self.rules_path}: {e}") from e

        expected = copy.deepcopy(data)
        lines = text.splitlines(keepends=True)
        outcomes = []

        for opt in optimizations:
            outcomes.extend(self._patch_rule(lines, expected, opt))

        new_text = "".join(lines)
        if new_text != text:
            if yaml.safe_load(new_text) != expected:
                raise RuleTableError(
                    f"Patched {self.rules_path} does not match the expected rules; nothing written"
                )
        return new_text, outcomes

    def _patch_rule(self, lines, expected, opt):
        key = opt.key
        new = opt.new_rule
        current = rules_section(expected).get(key)

        if not isinstance(current, dict):
            logger.warning(f"Could not find rule block for [{key}] to update.")
            return [PatchOutcome(key=key, status=PatchStatus.NOT_FOUND,
                                 message="rule not in rule table")]

        if new.timeout_hours is not None and current.get(RuleField.TIMEOUT_HOURS.value) is None:
            logger.warning(f"Could not find timeout_hours for [{key}] to update. "
                           f"Manual addition may be needed.")
            return [PatchOutcome(key=key, status=PatchStatus.FIELD_MISSING,
                                 field=RuleField.TIMEOUT_HOURS.value, new_value=new.timeout_hours,
                                 message="field not present, not adding it")]

        try:
            for field in (RuleField.THRESHOLD.value, RuleField.TIMEOUT_HOURS.value):
                if current.get(field) is not None:
                    _as_number(current[field], field, key)
        except ValueError as e:
            logger.warning(f"Rejected proposal for [{key}]: current {e}")
            return [PatchOutcome(key=key, status=PatchStatus.INVALID, message=f"current {e}")]

        merged = AlertRule(
            key=key,
            threshold=new.threshold,
            timeout_hours=new.timeout_hours if new.timeout_hours is not None
            else current.get(RuleField.TIMEOUT_HOURS.value),
        )
        problems = merged.validate()
        if problems:
            logger.warning(f"Rejected proposal for [{key}]: {'; '.join(problems)}")
            return [PatchOutcome(key=key, status=PatchStatus.INVALID, message="; ".join(problems))]

        changes = [(RuleField.THRESHOLD.value, new.threshold)]
        if new.timeout_hours is not None:
            changes.append((RuleField.TIMEOUT_HOURS.value, new.timeout_hours))

        outcomes = []
        edits = []
        block = None
        for field, value in changes:
            old = current.get(field)
            if _same(old, value):
                outcomes.append(PatchOutcome(key=key, status=PatchStatus.UNCHANGED, field=field,
                                             old_value=old, new_value=value))
                continue

            if block is None:
                block = find_rule_block(lines, key)
                if block is None:
                    logger.warning(f"Could not find rule block for [{key}] to update.")
                    return [PatchOutcome(key=key, status=PatchStatus.NOT_FOUND,
                                         message="rule block not found in text")]
            located = find_field_line(lines, block, field)
            if located is None:
                logger.warning(f"Could not find numeric {field} for [{key}] to update.")
                return [PatchOutcome(key=key, status=PatchStatus.FIELD_MISSING, field=field,
                                     new_value=value, message="field line not found in text")]
            index, m = located
            _, eol = _split_eol(lines[index])
            edits.append((index, f"{m.group('prefix')}{_yaml_number(value)}{m.group('suffix')}{eol}"))
            outcomes.append(PatchOutcome(key=key, status=PatchStatus.UPDATED, field=field,
                                         old_value=old, new_value=value))

        for index, line in edits:
            lines[index] = line
        for outcome in outcomes:
            if outcome.status == PatchStatus.UPDATED:
                current[outcome.field] = outcome.new_value
                logger.info(f"Updated {outcome.field} for [{key}] to {format_number(outcome.new_value)}.")
        return outcomes

"""Alert rule table loading and read access."""
import logging
import yaml
from pathlib import Path
from models.alerts import AlertRule

logger = logging.getLogger("crewalerts.rules")


class RuleTableError(Exception):
    """The rule table is malformed or cannot be patched safely."""


def _as_number(value, field, key):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field} for {key} must be a number (got {value!r})")
    return float(value)


def rules_section(data):
    """Return the ``rules`` mapping of a parsed rule table document."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RuleTableError("Rule table must be a mapping with a 'rules' section")
    rules = data.get("rules") or {}
    if not isinstance(rules, dict):
        raise RuleTableError("'rules' section must be a mapping of rule key to rule")
    return rules


def parse_rules(data):
    """Build ``{key: AlertRule}`` from a parsed document, skipping invalid rules."""
    rules = {}
    for key, raw in rules_section(data).items():
        if not isinstance(raw, dict):
            logger.warning(f"Rule {key} is not a mapping, skipping")
            continue
        try:
            timeout = raw.get("timeout_hours")
            rule = AlertRule(
                key=str(key),
                threshold=_as_number(raw.get("threshold"), "threshold", key),
                timeout_hours=_as_number(timeout, "timeout_hours", key) if timeout is not None else None,
                description=raw.get("description", "") or "",
            )
        except ValueError as e:
            logger.warning(f"Invalid rule {key}: {e}")
            continue
        problems = rule.validate()
        if problems:
            logger.warning(f"Invalid rule {key}: {'; '.join(problems)}")
            continue
        rules[rule.key] = rule
    return rules


class RulesManager:
    def __init__(self, rules_path="config/alert_rules.yaml"):
        self.rules_path = Path(rules_path)
        self.rules = {}
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            self.rules = {}
            return
        with open(self.rules_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise RuleTableError(f"Cannot parse {self.rules_path}: {e}") from e
        self.rules = parse_rules(data)
        logger.info(f"Loaded {len(self.rules)} alert rules from {self.rules_path}")

    def get_rule(self, key):
        return self.rules.get(key)

    def get_all_rules(self):
        return list(self.rules.values())

    def keys(self):
        return list(self.rules)

"""Dataclasses for alert rules, optimization reports and alert history."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.enums import PatchStatus


@dataclass
class AlertRule:
    key: str = ""
    threshold: float = 0.0
    timeout_hours: Optional[float] = None
    description: str = ""

    def validate(self):
        """Return a list of invariant violations (empty when valid)."""
        problems = []
        if self.threshold is None or self.threshold < 0:
            problems.append(f"threshold must be >= 0 (got {self.threshold})")
        if self.timeout_hours is not None and self.timeout_hours <= 0:
            problems.append(f"timeout_hours must be > 0 (got {self.timeout_hours})")
        return problems


@dataclass
class ProposedRule:
    threshold: float = 0.0
    timeout_hours: Optional[float] = None

    def to_dict(self):
        data = {"threshold": self.threshold}
        if self.timeout_hours is not None:
            data["timeoutHours"] = self.timeout_hours
        return data


@dataclass
class RuleOptimization:
    key: str = ""
    new_rule: ProposedRule = field(default_factory=ProposedRule)
    old_rule: Optional[ProposedRule] = None
    reason: str = ""

    def to_dict(self):
        data = {"key": self.key, "newRule": self.new_rule.to_dict()}
        if self.old_rule is not None:
            data["oldRule"] = self.old_rule.to_dict()
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class OptimizationReport:
    optimizations: list = field(default_factory=list)
    generated_at: Optional[datetime] = None

    def to_dict(self):
        data = {"optimizations": [o.to_dict() for o in self.optimizations]}
        if self.generated_at is not None:
            data["generatedAt"] = self.generated_at.isoformat()
        return data


@dataclass
class AlertEvent:
    id: Optional[int] = None
    rule_key: str = ""
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: Optional[datetime] = None
    note: str = ""

    @property
    def resolution_hours(self):
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.triggered_at).total_seconds() / 3600


@dataclass
class PatchOutcome:
    key: str = ""
    status: PatchStatus = PatchStatus.UNCHANGED
    field: Optional[str] = None
    old_value: Optional[float] = None
    new_value: Optional[float] = None
    message: str = ""


@dataclass
class PatchResult:
    report_found: bool = True
    outcomes: list = field(default_factory=list)
    written: bool = False

    @property
    def updated(self):
        return [o for o in self.outcomes if o.status == PatchStatus.UPDATED]

    @property
    def warnings(self):
        return [o for o in self.outcomes if o.status in PatchStatus.warning_statuses()]

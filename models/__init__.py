"""Data models."""
from models.enums import RuleField, PatchStatus
from models.alerts import (
    AlertRule, ProposedRule, RuleOptimization, OptimizationReport,
    AlertEvent, PatchOutcome, PatchResult,
)

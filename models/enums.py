"""Enums for rule fields and patch outcomes."""
from enum import Enum


class RuleField(str, Enum):
    THRESHOLD = "threshold"
    TIMEOUT_HOURS = "timeout_hours"


class PatchStatus(str, Enum):
    UPDATED = "UPDATED"
    UNCHANGED = "UNCHANGED"
    NOT_FOUND = "NOT_FOUND"
    FIELD_MISSING = "FIELD_MISSING"
    INVALID = "INVALID"

    @classmethod
    def warning_statuses(cls):
        return {cls.NOT_FOUND, cls.FIELD_MISSING, cls.INVALID}

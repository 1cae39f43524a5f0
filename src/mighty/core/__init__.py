"""Functional core - pure business logic with no I/O."""

from .entries import Entry, InstanceDraft, RecurrencePattern, RecurrenceRule, Section, is_elapsed
from .recurrence import InvalidRuleError, RecurrencePlan, expand_rule, plan, validate_rule
from .reminders import Reminder, ScheduleDiff, diff_schedule, select_due

__all__ = [
    # Entries
    "Entry",
    "InstanceDraft",
    "RecurrencePattern",
    "RecurrenceRule",
    "Section",
    "is_elapsed",
    # Recurrence
    "InvalidRuleError",
    "RecurrencePlan",
    "expand_rule",
    "plan",
    "validate_rule",
    # Reminders
    "Reminder",
    "ScheduleDiff",
    "diff_schedule",
    "select_due",
]

"""Pure recurrence logic - rule expansion and instance planning, no I/O.

Rule expansion uses `dateutil.rrule`:
- DAILY / WEEKLY / BIWEEKLY map directly onto rrule frequencies
- MONTHLY clamps to the month end (Jan 31 -> Feb 28) via bymonthday + bysetpos
- explicit dates become rdates, suppressed dates become exdates
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, rrule, rruleset

from .entries import Entry, InstanceDraft, RecurrencePattern, RecurrenceRule, is_elapsed

_WEEKDAYS = [MO, TU, WE, TH, FR, SA, SU]


class InvalidRuleError(Exception):
    """Raised when a recurrence rule cannot determine any recurring unit."""

    pass


@dataclass
class RecurrencePlan:
    """Mutations needed to bring one recurrence group up to date."""

    to_create: list[InstanceDraft] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    to_update: list[Entry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_delete or self.to_update)

    def summary(self) -> str:
        return f"+{len(self.to_create)} -{len(self.to_delete)} ~{len(self.to_update)}"


def validate_rule(rule: RecurrenceRule | None, anchor: date) -> None:
    """Reject rules that can't be expanded. Raises InvalidRuleError."""
    if rule is None:
        raise InvalidRuleError("Template has no recurrence rule")
    if rule.pattern is None and not rule.dates:
        raise InvalidRuleError("Rule needs a repeat pattern or an explicit date list")
    if rule.interval < 1:
        raise InvalidRuleError(f"Interval must be at least 1, got {rule.interval}")
    bad_days = [d for d in rule.weekdays if not 0 <= d <= 6]
    if bad_days:
        raise InvalidRuleError(f"Weekdays must be 0 (Monday) to 6 (Sunday), got {bad_days}")
    if rule.occurrence_count is not None and rule.occurrence_count < 1:
        raise InvalidRuleError("Occurrence count must be at least 1")
    if rule.end_date is not None and rule.occurrence_count is not None:
        raise InvalidRuleError("Rule can end on a date or after a count, not both")
    if rule.end_date is not None and rule.end_date < anchor:
        raise InvalidRuleError(f"End date {rule.end_date} is before the first occurrence {anchor}")


def validate_template(template: Entry) -> None:
    """Check a template is well-formed before it's saved."""
    if not template.is_recurrence_template:
        raise InvalidRuleError(f"Entry {template.id} is not a recurrence template")
    validate_rule(template.rule, template.date)


def _midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _pattern_rrule(rule: RecurrenceRule, anchor: date) -> rrule:
    """Build the rrule for a rule's repeat pattern."""
    dtstart = _midnight(anchor)
    until = _midnight(rule.end_date) if rule.end_date else None
    count = rule.occurrence_count

    match rule.pattern:
        case RecurrencePattern.DAILY:
            return rrule(DAILY, interval=rule.interval, dtstart=dtstart, until=until, count=count)
        case RecurrencePattern.WEEKLY | RecurrencePattern.BIWEEKLY:
            interval = rule.interval * (2 if rule.pattern == RecurrencePattern.BIWEEKLY else 1)
            # No weekdays: repeat on the anchor's weekday
            byweekday = [_WEEKDAYS[d] for d in sorted(set(rule.weekdays))] or None
            return rrule(
                WEEKLY,
                interval=interval,
                dtstart=dtstart,
                until=until,
                count=count,
                byweekday=byweekday,
                wkst=MO,
            )
        case RecurrencePattern.MONTHLY:
            if anchor.day <= 28:
                return rrule(
                    MONTHLY,
                    interval=rule.interval,
                    dtstart=dtstart,
                    until=until,
                    count=count,
                    bymonthday=anchor.day,
                )
            # Last of the candidate days that exists in each month
            return rrule(
                MONTHLY,
                interval=rule.interval,
                dtstart=dtstart,
                until=until,
                count=count,
                bymonthday=tuple(range(28, anchor.day + 1)),
                bysetpos=-1,
            )
    raise InvalidRuleError(f"Unsupported pattern: {rule.pattern}")


def build_ruleset(template: Entry) -> rruleset:
    """Expandable set of a template's occurrence days (at midnight)."""
    validate_template(template)
    rule = template.rule
    rset = rruleset()
    if rule.pattern is not None:
        rset.rrule(_pattern_rrule(rule, template.date))
    for d in rule.dates:
        rset.rdate(_midnight(d))
    for d in template.excluded_dates:
        rset.exdate(_midnight(d))
    return rset


def occurrence_dates(template: Entry, start: date, end: date) -> list[date]:
    """
    Every day the template's rule produces in [start, end].

    Day granularity - start times are not considered.
    """
    if end < start:
        return []
    rset = build_ruleset(template)
    return [dt.date() for dt in rset.between(_midnight(start), _midnight(end), inc=True)]


def _within(day: date, start_time: time | None, end: datetime) -> bool:
    if start_time is None:
        return day <= end.date()
    return datetime.combine(day, start_time) <= end


def expand_rule(template: Entry, now: datetime, horizon_end: datetime) -> list[date]:
    """
    Ordered occurrence days in [now, horizon_end].

    An occurrence already elapsed today (its start time has passed) is left
    out.
    """
    return [
        d
        for d in occurrence_dates(template, now.date(), horizon_end.date())
        if not is_elapsed(d, template.start_time, now) and _within(d, template.start_time, horizon_end)
    ]


def _inherit(template: Entry, instance: Entry) -> Entry:
    """Instance with the template's canonical fields re-applied."""
    return replace(
        instance,
        title=template.title,
        start_time=template.start_time,
        end_time=template.end_time,
        notify_before=template.notify_before,
        section_id=template.section_id,
        notes=template.notes,
    )


def _draft(template: Entry, day: date) -> InstanceDraft:
    return InstanceDraft(
        recurrence_group_id=template.recurrence_group_id,
        occurrence_date=day,
        title=template.title,
        start_time=template.start_time,
        end_time=template.end_time,
        notify_before=template.notify_before,
        section_id=template.section_id,
        owner_id=template.owner_id,
        notes=template.notes,
    )


def plan(
    template: Entry,
    existing: list[Entry],
    horizon_end: datetime,
    now: datetime,
) -> RecurrencePlan:
    """
    Compute the mutations that make a group cover [now, horizon_end].

    Pure function - no I/O. Elapsed instances are never touched, nor are
    instances the user edited or completed. Applying the result and calling
    plan again yields an empty plan.

    Raises:
        InvalidRuleError: the template's rule can't be expanded.
    """
    validate_template(template)
    group_id = template.recurrence_group_id
    if group_id is None:
        raise InvalidRuleError(f"Template {template.id} has no recurrence group")

    instances = sorted(
        (
            e
            for e in existing
            if e.recurrence_group_id == group_id and not e.is_recurrence_template and e.id != template.id
        ),
        key=lambda e: (e.slot, e.id),
    )
    removable = [e for e in instances if not e.is_elapsed(now) and not e.user_touched]

    # Rule membership must also cover instances materialized beyond the
    # current horizon, otherwise shrinking the horizon would delete them
    membership_end = max([horizon_end.date()] + [e.slot for e in removable])
    members = set(occurrence_dates(template, now.date(), membership_end))

    result = RecurrencePlan()

    # Slots held by instances that regeneration must not compete with
    removable_ids = {e.id for e in removable}
    held = {e.slot for e in instances if e.id not in removable_ids}
    kept: set[date] = set()
    for e in removable:
        if e.slot not in members or e.slot in held or e.slot in kept:
            result.to_delete.append(e.id)
            continue
        kept.add(e.slot)
        refreshed = _inherit(template, e)
        if refreshed != e and not refreshed.is_elapsed(now):
            result.to_update.append(refreshed)

    deleted = set(result.to_delete)
    survivors = [e for e in instances if e.id not in deleted]
    occupied = {e.slot for e in survivors} | {e.date for e in survivors}
    for day in expand_rule(template, now, horizon_end):
        if day not in occupied:
            result.to_create.append(_draft(template, day))
            occupied.add(day)

    return result

from status_alerts.exceptions import DiffError
from status_alerts.models import (
    PLACEHOLDER_ENTRY,
    PROBLEM_LEVELS,
    Alert,
    AlertKind,
    Level,
    ObservedState,
    Severity,
    TimelineEntry,
    TimelineSnapshot,
    UptimeSnapshot,
)


def diff_uptime(previous: UptimeSnapshot, current: UptimeSnapshot) -> list[Alert]:
    """
    Return one alert per institution that moved out of "clear" since the last poll.

    An institution missing from `previous` counts as previously clear, so
    first-seen institutions alert instead of raising. Institutions that stay
    in warning or error produce nothing, which is what keeps a sustained
    outage from re-alerting on every poll.
    """
    alerts: list[Alert] = []
    for inst_id, now in current.items():
        if now.level not in PROBLEM_LEVELS:
            continue
        before = previous.get(inst_id)
        was_clear = before is None or before.level == Level.CLEAR
        if not was_clear:
            continue
        alerts.append(Alert(
            kind=AlertKind.UPTIME,
            institution=inst_id,
            title=now.title,
            level=now.level,
            percentage=now.percentage,
            severity=Severity(now.level.value),
        ))
    return alerts


def _open_window(current: TimelineSnapshot) -> TimelineSnapshot:
    """Entries from the head up to (not including) the first "All Clear" marker."""
    for index, entry in enumerate(current):
        if entry.is_all_clear:
            return current[:index]
    return current


def diff_timeline(previous: TimelineSnapshot, current: TimelineSnapshot) -> list[Alert]:
    """
    Return alerts for the open incident window when the timeline head changed.

    The head entry's title is the dedup key: an unchanged head means nothing
    new, and an "All Clear" head means the situation is resolved. With no
    previous timeline the head is compared against an untitled placeholder,
    so the first poll reports the whole open window.
    """
    if not current:
        return []

    latest = current[0]
    last_seen: TimelineEntry = previous[0] if previous else PLACEHOLDER_ENTRY

    if latest.is_all_clear or latest.title == last_seen.title:
        return []

    return [
        Alert(
            kind=AlertKind.TIMELINE,
            title=entry.title,
            message=entry.description,
            activated_at=entry.activated_at,
            severity=Severity.WARNING,
        )
        for entry in _open_window(tuple(current))
    ]


def compute_alerts(
    previous: ObservedState,
    uptime: UptimeSnapshot,
    timeline: TimelineSnapshot,
) -> list[Alert]:
    """Uptime alerts followed by timeline alerts for one poll cycle."""
    try:
        return diff_uptime(previous.uptime, uptime) + diff_timeline(previous.timeline, timeline)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise DiffError(f"cannot diff snapshots: {exc!r}") from exc

# parses the status feed's JSON payloads into snapshot types.

# Design decisions:
#   - A payload whose overall shape is wrong raises PayloadError: the cycle
#     is skipped and the observed state stays where it was.
#   - A single uptime entry with an unknown level is skipped with a warning.
#     Leaving it out of the snapshot means it counts as "clear" on the next
#     poll, which can only cause an alert, never suppress one.
#   - Timeline entries keep the feed's order (newest first); the differ
#     depends on it, so a malformed entry fails the whole payload instead of
#     silently shifting indices.

import logging
from typing import Any

from status_alerts.exceptions import PayloadError
from status_alerts.models import (
    InstitutionUptime,
    Level,
    TimelineEntry,
    TimelineSnapshot,
    UptimeSnapshot,
    parse_dt,
)

log = logging.getLogger(__name__)


def _parse_uptime_entry(inst_id: str, raw: Any) -> InstitutionUptime | None:
    if not isinstance(raw, dict):
        log.warning("Skipping uptime entry %s: expected object, got %s", inst_id, type(raw).__name__)
        return None

    # entries nest their live values under "current"; accept flat entries too
    current = raw.get("current", raw)
    if not isinstance(current, dict):
        log.warning("Skipping uptime entry %s: 'current' is not an object", inst_id)
        return None

    try:
        level = Level(str(current.get("level", "")).lower())
    except ValueError:
        log.warning("Skipping uptime entry %s: unknown level %r", inst_id, current.get("level"))
        return None

    try:
        percentage = float(current.get("percentage", 0.0))
    except (TypeError, ValueError):
        log.warning("Skipping uptime entry %s: bad percentage %r", inst_id, current.get("percentage"))
        return None

    return InstitutionUptime(
        title=str(current.get("title") or inst_id),
        level=level,
        percentage=percentage,
    )


def parse_uptime(data: Any) -> UptimeSnapshot:
    """
    Parse an uptime payload: a JSON object keyed by institution id.

    Raises PayloadError if the payload is not an object.
    """
    if not isinstance(data, dict):
        raise PayloadError(f"uptime payload must be an object, got {type(data).__name__}")

    snapshot: dict[str, InstitutionUptime] = {}
    for inst_id, raw in data.items():
        entry = _parse_uptime_entry(str(inst_id), raw)
        if entry is not None:
            snapshot[str(inst_id)] = entry
    return snapshot


def parse_timeline(data: Any) -> TimelineSnapshot:
    """
    Parse a timeline payload: a JSON array of incidents, newest first.

    A wrapping object of the form {"timeline": [...]} is unwrapped.
    Raises PayloadError on any entry without a title.
    """
    if isinstance(data, dict) and "timeline" in data:
        data = data["timeline"]
    if not isinstance(data, list):
        raise PayloadError(f"timeline payload must be an array, got {type(data).__name__}")

    entries: list[TimelineEntry] = []
    for position, raw in enumerate(data):
        if not isinstance(raw, dict) or not isinstance(raw.get("title"), str):
            raise PayloadError(f"timeline entry {position} has no title")
        activated = raw.get("activated_at", raw.get("activatedAt"))
        entries.append(TimelineEntry(
            title=raw["title"],
            description=str(raw.get("description") or ""),
            activated_at=parse_dt(activated) if isinstance(activated, str) else None,
        ))
    return tuple(entries)

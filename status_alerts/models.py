import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

log = logging.getLogger(__name__)

ALL_CLEAR_TITLE = "All Clear"


def parse_dt(value: str | None) -> datetime | None:
    """
    Parse an ISO 8601 timestamp string into an aware UTC datetime.

    The status feed returns strings like '2024-11-03T14:32:00.000Z'.
    Naive values are assumed to already be UTC.
    """
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        log.warning("Could not parse datetime string: %r", value)
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_dt(dt: datetime | None) -> str:
    """Human-readable UTC timestamp for display."""
    if dt is None:
        return "Unknown"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def isoformat_dt(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class Level(str, Enum):
    CLEAR = "clear"
    WARNING = "warning"
    ERROR = "error"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class AlertKind(str, Enum):
    UPTIME = "uptime"
    TIMELINE = "timeline"


PROBLEM_LEVELS: frozenset[Level] = frozenset({Level.WARNING, Level.ERROR})


@dataclass(frozen=True)
class InstitutionUptime:
    """Current health of one institution as reported by the uptime feed."""
    title: str
    level: Level
    percentage: float


@dataclass(frozen=True)
class TimelineEntry:
    """
    One entry of the incident timeline.

    The feed lists entries newest first. An entry titled "All Clear" is a
    resolution marker that closes the incident window below it.
    """
    title: str
    description: str = ""
    activated_at: datetime | None = None

    @property
    def is_all_clear(self) -> bool:
        return self.title == ALL_CLEAR_TITLE


# Stand-in for previous[0] when nothing has been observed yet.
PLACEHOLDER_ENTRY = TimelineEntry(title="")

UptimeSnapshot = Mapping[str, InstitutionUptime]
TimelineSnapshot = tuple[TimelineEntry, ...]


@dataclass(frozen=True)
class Alert:
    """A single notification-worthy fact, handed to the notifier in batches."""
    kind: AlertKind
    title: str
    severity: Severity
    institution: str | None = None
    level: Level | None = None
    percentage: float | None = None
    message: str = ""
    activated_at: datetime | None = None


@dataclass(frozen=True)
class ObservedState:
    """
    The last uptime and timeline snapshots that have already been alerted on.

    Instances are immutable: the poll loop replaces its state wholesale
    after a cycle instead of merging into it.
    """
    uptime: UptimeSnapshot = field(default_factory=dict)
    timeline: TimelineSnapshot = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "uptime", MappingProxyType(dict(self.uptime)))
        object.__setattr__(self, "timeline", tuple(self.timeline))

    @classmethod
    def empty(cls) -> "ObservedState":
        return cls()

    @property
    def latest_entry(self) -> TimelineEntry:
        return self.timeline[0] if self.timeline else PLACEHOLDER_ENTRY

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObservedState):
            return NotImplemented
        return dict(self.uptime) == dict(other.uptime) and self.timeline == other.timeline

    def __hash__(self) -> int:
        return hash((frozenset(self.uptime.items()), self.timeline))

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime": {
                inst_id: {
                    "title": u.title,
                    "level": u.level.value,
                    "percentage": u.percentage,
                }
                for inst_id, u in sorted(self.uptime.items())
            },
            "timeline": [
                {
                    "title": e.title,
                    "description": e.description,
                    "activated_at": isoformat_dt(e.activated_at),
                }
                for e in self.timeline
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ObservedState":
        """Inverse of to_dict(). Raises KeyError/ValueError/TypeError on bad input."""
        uptime = {
            str(inst_id): InstitutionUptime(
                title=str(entry["title"]),
                level=Level(entry["level"]),
                percentage=float(entry["percentage"]),
            )
            for inst_id, entry in data.get("uptime", {}).items()
        }
        timeline = tuple(
            TimelineEntry(
                title=str(entry["title"]),
                description=str(entry.get("description", "")),
                activated_at=parse_dt(entry.get("activated_at")),
            )
            for entry in data.get("timeline", [])
        )
        return cls(uptime=uptime, timeline=timeline)

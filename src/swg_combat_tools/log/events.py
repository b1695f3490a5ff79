"""
Combat event types and the per-pass event store.

Every type here is created fresh by a parse pass. Events keep the time as
integer seconds from the first timestamp seen in the log.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any

# Hit quality flags carried by landed damage
HIT = 'hit'
CRIT = 'crit'
GLANCE = 'glance'
STRIKETHROUGH = 'strikethrough'
PERIODIC = 'periodic'

# Defensive outcome flags carried by zero-amount placeholder events
DODGE = 'dodge'
PARRY = 'parry'
MISS = 'miss'

HIT_FLAGS = (HIT, CRIT, GLANCE, STRIKETHROUGH, PERIODIC)
OUTCOME_FLAGS = (DODGE, PARRY, MISS)


@dataclass
class DamageEvent:
    """A single damage line, or a defensive outcome recorded with zero damage."""
    t: int
    src: str
    dst: str
    ability: str
    ability_key: str
    amount: int
    flag: Optional[str] = None
    blocked: Optional[int] = None
    absorbed: Optional[int] = None
    pre_mitigation: Optional[int] = None
    resisted: Optional[int] = None
    evaded_pct: Optional[float] = None
    elements: Optional[Dict[str, int]] = None

    @property
    def is_outcome(self) -> bool:
        return self.flag in OUTCOME_FLAGS

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class HealEvent:
    """A single heal line."""
    t: int
    src: str
    dst: str
    ability: str
    ability_key: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UtilityEvent:
    """A non-damaging ability activation."""
    t: int
    src: str
    ability: str
    ability_key: str
    dst: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class DeathEvent:
    """A death line. Names are kept raw and canonicalized when read."""
    t: int
    name: str
    killer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class TimelineEntry:
    """Aggregate damage and healing for one second."""
    second: int
    dps: int
    hps: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Segment:
    """An encounter: a contiguous span of activity bounded by idle gaps."""
    start: int
    end: int
    label: str
    instance: Optional[str] = None

    @property
    def duration(self) -> int:
        return self.end - self.start + 1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['duration'] = self.duration
        return data


@dataclass
class EventStore:
    """Ordered event lists produced by one parse pass."""
    damage: List[DamageEvent] = field(default_factory=list)
    heals: List[HealEvent] = field(default_factory=list)
    utility: List[UtilityEvent] = field(default_factory=list)
    deaths: List[DeathEvent] = field(default_factory=list)
    duration: int = 0
    has_timestamps: bool = False

    @property
    def event_count(self) -> int:
        return len(self.damage) + len(self.heals) + len(self.utility) + len(self.deaths)


@dataclass
class ParseSummary:
    """Summary of a parse pass, reported as the payload's debug block."""
    total_lines: int = 0
    parsed: int = 0
    duplicates_dropped: int = 0
    unparsed: int = 0
    ignored: int = 0
    out_of_order: int = 0
    unparsed_samples: List[str] = None

    def __post_init__(self):
        if self.unparsed_samples is None:
            self.unparsed_samples = []

    def to_dict(self, include_unparsed: bool = False) -> Dict[str, Any]:
        debug = {
            'parsed': self.parsed,
            'total_lines': self.total_lines,
            'duplicates_dropped': self.duplicates_dropped,
            'unparsed': self.unparsed,
            'ignored': self.ignored,
            'out_of_order': self.out_of_order,
        }
        if include_unparsed:
            debug['unparsed_samples'] = list(self.unparsed_samples)
        return debug

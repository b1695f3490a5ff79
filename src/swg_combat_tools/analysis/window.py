"""
Window re-aggregation.

Recomputes every aggregate view for a time window from the base event
store. Names are resolved through the session's canonicalization context
and ability keys are re-normalized on the way in, so this is also the path
that gives fully consistent names for the whole fight: "no window" means
[0, duration], not "skip windowing".

The base store is only read. Each call builds its own CombatAggregate, so
concurrent calls against the same store do not interfere.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from ..log.canonical import CanonContext, normalize_ability
from ..log.events import DamageEvent, HealEvent, UtilityEvent, DeathEvent, EventStore, ParseSummary
from .aggregator import CombatAggregate

logger = logging.getLogger(__name__)


def resolve_window(store: EventStore, start: Optional[int] = None, end: Optional[int] = None) -> Tuple[int, int]:
    """
    Fill in a partial window and validate it.

    Args:
        store: Base event store (its duration bounds an open end)
        start: First second, 0 when omitted
        end: Last second (inclusive), the store's duration when omitted

    Returns:
        (start, end) tuple

    Raises:
        ValueError: If start is after end or start is negative
    """
    start = 0 if start is None else int(start)
    end = store.duration if end is None else int(end)
    if start < 0:
        raise ValueError(f"Window start must not be negative, got {start}")
    if start > end:
        raise ValueError(f"Window start {start} is after window end {end}")
    return start, end


def _canonical_copy(event, canon: CanonContext):
    """Copy of an event with canonical names and a re-normalized ability key."""
    def name(raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        return canon.canonical_actor(raw) or raw

    if isinstance(event, DeathEvent):
        return replace(event, name=name(event.name), killer=name(event.killer))

    key = normalize_ability(event.ability_key, fallback=event.ability_key)
    if isinstance(event, (DamageEvent, HealEvent)):
        return replace(event, src=name(event.src), dst=name(event.dst), ability_key=key)
    if isinstance(event, UtilityEvent):
        return replace(event, src=name(event.src), dst=name(event.dst), ability_key=key)
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def reaggregate(store: EventStore, canon: CanonContext,
                start: Optional[int] = None, end: Optional[int] = None) -> CombatAggregate:
    """
    Build a fresh aggregate from the events inside [start, end].

    Args:
        store: Base event store; never modified
        canon: Session canonicalization context, used read-only
        start: First second of the window (default 0)
        end: Last second of the window, inclusive (default store.duration)

    Returns:
        CombatAggregate covering exactly the window
    """
    start, end = resolve_window(store, start, end)
    window_store = EventStore(duration=store.duration, has_timestamps=store.has_timestamps)
    aggregate = CombatAggregate(window_store, start, end)

    for events in (store.damage, store.heals, store.utility, store.deaths):
        for event in events:
            if start <= event.t <= end:
                aggregate.record(_canonical_copy(event, canon))

    logger.debug(f"Re-aggregated window [{start}, {end}]: {window_store.event_count} events")
    return aggregate


def window_payload(store: EventStore, canon: CanonContext, start: Optional[int] = None,
                   end: Optional[int] = None, summary: Optional[ParseSummary] = None) -> Dict[str, Any]:
    """Payload for a window, in the same shape as the full-parse payload."""
    return reaggregate(store, canon, start, end).to_payload(summary)

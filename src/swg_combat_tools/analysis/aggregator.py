"""
Event sink and aggregate views.

CombatAggregate is the one place where events are folded into tables. Each
event kind has its own add_* method, and every table that an event touches
is updated inside that method, so the tables cannot drift apart:

- per-actor per-second damage and healing
- per-actor per-ability and per-actor per-ability per-target hit tables
- damage taken and damage taken by source
- per-defender outcome tallies (landed hits, glances, dodges, parries)
- per-actor per-ability elemental totals

Output views (rows, timeline, defender metrics, payload) are derived on
demand from those tables.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple, Any, Iterable

import numpy as np

from ..log.canonical import CanonContext, normalize_ability
from ..log.events import (
    DamageEvent, HealEvent, UtilityEvent, DeathEvent, EventStore, ParseSummary,
    TimelineEntry, GLANCE, PERIODIC, DODGE, PARRY,
)

logger = logging.getLogger(__name__)


def _pct(part: float, whole: float) -> float:
    return round(100.0 * part / whole, 2) if whole else 0.0


@dataclass
class AbilityStats:
    """Hit count, total damage and largest single hit for one bucket."""
    hits: int = 0
    damage: int = 0
    max_hit: int = 0

    def add(self, amount: int):
        self.hits += 1
        self.damage += amount
        self.max_hit = max(self.max_hit, amount)

    def merge(self, other: 'AbilityStats'):
        self.hits += other.hits
        self.damage += other.damage
        self.max_hit = max(self.max_hit, other.max_hit)

    def to_dict(self) -> Dict[str, int]:
        return {'hits': self.hits, 'damage': self.damage, 'max': self.max_hit}


@dataclass
class DefenderStats:
    """
    Outcome tallies for attacks received by one actor.

    All chance percentages use attempts = hits + glances + dodges + parries,
    except glance share which is taken over landed attacks only
    (hits + glances).
    """
    hits: int = 0
    glances: int = 0
    glance_damage: int = 0
    dodges: int = 0
    parries: int = 0
    blocks: int = 0
    blocked_damage: int = 0
    evade_samples: int = 0
    evaded_pct_total: float = 0.0

    @property
    def attempts(self) -> int:
        return self.hits + self.glances + self.dodges + self.parries

    @property
    def landed(self) -> int:
        return self.hits + self.glances

    @property
    def dodge_pct(self) -> float:
        return _pct(self.dodges, self.attempts)

    @property
    def parry_pct(self) -> float:
        return _pct(self.parries, self.attempts)

    @property
    def glance_pct(self) -> float:
        return _pct(self.glances, self.landed)

    @property
    def avg_glance(self) -> float:
        return round(self.glance_damage / self.glances, 2) if self.glances else 0.0

    @property
    def block_pct(self) -> float:
        return _pct(self.blocks, self.landed)

    @property
    def avg_evaded_pct(self) -> float:
        return round(self.evaded_pct_total / self.evade_samples, 2) if self.evade_samples else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hits': self.hits,
            'glances': self.glances,
            'glance_pct': self.glance_pct,
            'avg_glance': self.avg_glance,
            'attempts': self.attempts,
            'landed': self.landed,
            'dodges': self.dodges,
            'dodge_pct': self.dodge_pct,
            'parries': self.parries,
            'parry_pct': self.parry_pct,
            'blocks': self.blocks,
            'blocked_damage': self.blocked_damage,
            'block_pct': self.block_pct,
            'avg_evaded_pct': self.avg_evaded_pct,
        }


def merge_ability_buckets(table: Dict[str, AbilityStats]) -> Dict[str, AbilityStats]:
    """
    Re-normalize ability keys and merge buckets that collapse onto one key.

    Args:
        table: ability key -> stats for one actor

    Returns:
        New table; hits and damage are summed, max is the larger max
    """
    merged: Dict[str, AbilityStats] = defaultdict(AbilityStats)
    for key, stats in table.items():
        merged[normalize_ability(key, fallback=key)].merge(stats)
    return dict(merged)


def _nested_int():
    return defaultdict(int)


def _nested_stats():
    return defaultdict(AbilityStats)


def _nested_target_stats():
    return defaultdict(_nested_stats)


def _nested_elements():
    return defaultdict(_nested_int)


class CombatAggregate:
    """
    Event sink for one parse pass or one time window.

    Args:
        store: Event store to append to; a fresh one is created when omitted
        start: First second covered by derived views
        end: Last second covered (inclusive); defaults to store.duration
    """

    def __init__(self, store: Optional[EventStore] = None, start: int = 0, end: Optional[int] = None):
        self.store = store if store is not None else EventStore()
        self.window_start = start
        self.window_end = end

        self.damage_series: Dict[str, Dict[int, int]] = defaultdict(_nested_int)
        self.healing_series: Dict[str, Dict[int, int]] = defaultdict(_nested_int)
        self.per_ability: Dict[str, Dict[str, AbilityStats]] = defaultdict(_nested_stats)
        self.per_ability_target: Dict[str, Dict[str, Dict[str, AbilityStats]]] = defaultdict(_nested_target_stats)
        self.heal_abilities: Dict[str, Dict[str, AbilityStats]] = defaultdict(_nested_stats)
        self.taken: Dict[str, int] = defaultdict(int)
        self.taken_by: Dict[str, Dict[str, int]] = defaultdict(_nested_int)
        self.defenders: Dict[str, DefenderStats] = defaultdict(DefenderStats)
        self.elements: Dict[str, Dict[str, Dict[str, int]]] = defaultdict(_nested_elements)

    # ------------------------------------------------------------------
    # Event sink
    # ------------------------------------------------------------------

    def add_damage(self, event: DamageEvent):
        """Record a landed (or zero) damage event."""
        self.store.damage.append(event)
        amount = event.amount
        if amount <= 0:
            return

        self.damage_series[event.src][event.t] += amount
        self.per_ability[event.src][event.ability_key].add(amount)
        self.per_ability_target[event.src][event.ability_key][event.dst].add(amount)

        if event.elements:
            for element, value in event.elements.items():
                self.elements[event.src][event.ability_key][element] += value

        if event.src == event.dst:
            return

        self.taken[event.dst] += amount
        self.taken_by[event.dst][event.src] += amount
        self._tally_defender(event)

    def add_defense(self, event: DamageEvent):
        """Record a dodge, parry or plain miss as a zero-amount event."""
        if event.amount:
            event = replace(event, amount=0)
        self.store.damage.append(event)
        self._tally_defender(event)

    def _tally_defender(self, event: DamageEvent):
        """Count one attack against its target; self damage and ticks are ignored."""
        if event.src == event.dst or event.flag == PERIODIC:
            return

        if event.is_outcome:
            if event.flag == DODGE:
                self.defenders[event.dst].dodges += 1
            elif event.flag == PARRY:
                self.defenders[event.dst].parries += 1
            return
        if event.amount <= 0:
            return

        defender = self.defenders[event.dst]
        if event.flag == GLANCE:
            defender.glances += 1
            defender.glance_damage += event.amount
        else:
            defender.hits += 1
        if event.blocked:
            defender.blocks += 1
            defender.blocked_damage += event.blocked
        if event.evaded_pct is not None:
            defender.evade_samples += 1
            defender.evaded_pct_total += event.evaded_pct

    def add_heal(self, event: HealEvent):
        self.store.heals.append(event)
        if event.amount > 0:
            self.healing_series[event.src][event.t] += event.amount
            self.heal_abilities[event.src][event.ability_key].add(event.amount)

    def add_utility(self, event: UtilityEvent):
        self.store.utility.append(event)

    def add_death(self, event: DeathEvent):
        self.store.deaths.append(event)

    def record(self, event):
        """Dispatch any event type to its sink method."""
        if isinstance(event, DamageEvent):
            if event.is_outcome:
                self.add_defense(event)
            else:
                self.add_damage(event)
        elif isinstance(event, HealEvent):
            self.add_heal(event)
        elif isinstance(event, UtilityEvent):
            self.add_utility(event)
        elif isinstance(event, DeathEvent):
            self.add_death(event)
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def feed(self, events: Iterable):
        for event in events:
            self.record(event)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def span(self) -> Tuple[int, int]:
        """Inclusive (start, end) seconds covered by this aggregate."""
        end = self.window_end if self.window_end is not None else self.store.duration
        return self.window_start, max(self.window_start, end)

    @property
    def length(self) -> int:
        start, end = self.span()
        return end - start + 1

    def _to_array(self, per_second: Dict[int, int]) -> np.ndarray:
        start, end = self.span()
        values = np.zeros(end - start + 1, dtype=np.int64)
        for second, amount in per_second.items():
            if start <= second <= end:
                values[second - start] += amount
        return values

    def damage_array(self, actor: str) -> np.ndarray:
        """Dense per-second damage of one actor over the covered span."""
        return self._to_array(self.damage_series.get(actor, {}))

    def healing_array(self, actor: str) -> np.ndarray:
        return self._to_array(self.healing_series.get(actor, {}))

    def total_damage_array(self) -> np.ndarray:
        total = np.zeros(self.length, dtype=np.int64)
        for actor in self.damage_series:
            total += self.damage_array(actor)
        return total

    def total_healing_array(self) -> np.ndarray:
        total = np.zeros(self.length, dtype=np.int64)
        for actor in self.healing_series:
            total += self.healing_array(actor)
        return total

    def timeline(self) -> List[TimelineEntry]:
        """One entry per second of the span, zero-filled; empty when no line had a timestamp."""
        if not self.store.has_timestamps:
            return []

        start, _ = self.span()
        dps = self.total_damage_array()
        hps = self.total_healing_array()
        return [
            TimelineEntry(second=start + offset, dps=int(dps[offset]), hps=int(hps[offset]))
            for offset in range(len(dps))
        ]

    def actor_totals(self) -> Dict[str, Dict[str, int]]:
        totals: Dict[str, Dict[str, int]] = {}
        for actor, per_second in self.damage_series.items():
            totals.setdefault(actor, {'damage': 0, 'healing': 0})['damage'] = sum(per_second.values())
        for actor, per_second in self.healing_series.items():
            totals.setdefault(actor, {'damage': 0, 'healing': 0})['healing'] = sum(per_second.values())
        return totals

    def rows(self) -> List[Dict[str, Any]]:
        """
        Per-actor summary rows, most damage first.

        Returns:
            List of {name, damage, healing, avg_dps} where avg_dps is damage
            over end - start seconds (at least 1)
        """
        start, end = self.span()
        seconds = max(1, end - start)
        rows = [
            {
                'name': actor,
                'damage': totals['damage'],
                'healing': totals['healing'],
                'avg_dps': round(totals['damage'] / seconds, 2),
            }
            for actor, totals in self.actor_totals().items()
        ]
        rows.sort(key=lambda r: (-r['damage'], -r['healing'], r['name']))
        return rows

    def defender_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: stats.to_dict() for name, stats in sorted(self.defenders.items())}

    def ability_table(self) -> Dict[str, Dict[str, Dict[str, int]]]:
        return {
            actor: {key: stats.to_dict() for key, stats in abilities.items()}
            for actor, abilities in self.per_ability.items()
        }

    def ability_target_table(self) -> Dict[str, Dict[str, Dict[str, Dict[str, int]]]]:
        return {
            actor: {
                key: {target: stats.to_dict() for target, stats in targets.items()}
                for key, targets in abilities.items()
            }
            for actor, abilities in self.per_ability_target.items()
        }

    # ------------------------------------------------------------------
    # Second canonicalization pass
    # ------------------------------------------------------------------

    def folded(self, canon: CanonContext) -> 'CombatAggregate':
        """
        Re-key every per-actor table through the canonicalization context.

        Ingestion resolves names with what has been seen so far; aliases
        discovered later in the log (an owner first seen after its pet) are
        only applied here. Colliding keys are merged: counts and damage are
        summed, max hits keep the larger value. Damage that becomes
        self-inflicted after folding is dropped from the taken tables, and
        defender tallies are recounted from the folded events.

        Args:
            canon: The session's canonicalization context

        Returns:
            A new CombatAggregate; this one is left untouched
        """
        def name(raw: str) -> str:
            return canon.canonical_actor(raw) or raw

        store = EventStore(
            damage=[replace(e, src=name(e.src), dst=name(e.dst)) for e in self.store.damage],
            heals=[replace(e, src=name(e.src), dst=name(e.dst)) for e in self.store.heals],
            utility=[replace(e, src=name(e.src), dst=name(e.dst) if e.dst else None) for e in self.store.utility],
            deaths=list(self.store.deaths),
            duration=self.store.duration,
            has_timestamps=self.store.has_timestamps,
        )
        result = CombatAggregate(store, self.window_start, self.window_end)

        for actor, per_second in self.damage_series.items():
            target = result.damage_series[name(actor)]
            for second, amount in per_second.items():
                target[second] += amount

        for actor, per_second in self.healing_series.items():
            target = result.healing_series[name(actor)]
            for second, amount in per_second.items():
                target[second] += amount

        for actor, abilities in self.per_ability.items():
            for key, stats in merge_ability_buckets(abilities).items():
                result.per_ability[name(actor)][key].merge(stats)

        for actor, abilities in self.heal_abilities.items():
            for key, stats in merge_ability_buckets(abilities).items():
                result.heal_abilities[name(actor)][key].merge(stats)

        for actor, abilities in self.per_ability_target.items():
            for key, targets in abilities.items():
                merged_key = normalize_ability(key, fallback=key)
                for dst, stats in targets.items():
                    result.per_ability_target[name(actor)][merged_key][name(dst)].merge(stats)

        for dst, sources in self.taken_by.items():
            for src, amount in sources.items():
                if name(src) == name(dst):
                    continue
                result.taken[name(dst)] += amount
                result.taken_by[name(dst)][name(src)] += amount

        for event in store.damage:
            result._tally_defender(event)

        for actor, abilities in self.elements.items():
            for key, split in abilities.items():
                merged_key = normalize_ability(key, fallback=key)
                for element, value in split.items():
                    result.elements[name(actor)][merged_key][element] += value

        logger.debug(f"Folded {len(self.damage_series)} damage actors into {len(result.damage_series)}")
        return result

    # ------------------------------------------------------------------
    # Output contract
    # ------------------------------------------------------------------

    def to_payload(self, summary: Optional[ParseSummary] = None, include_unparsed: bool = False,
                   canon: Optional[CanonContext] = None) -> Dict[str, Any]:
        """
        Build the payload consumed by reports and callers.

        Args:
            summary: Parse summary for the debug block (zeros when omitted)
            include_unparsed: Include the sampled unparsed lines in the debug block
            canon: Context used to resolve death names at read time

        Returns:
            Plain dictionary of lists, dicts and numbers
        """
        start, end = self.span()
        summary = summary or ParseSummary()

        def death_dict(event: DeathEvent) -> Dict[str, Any]:
            data = event.to_dict()
            if canon is not None:
                data['name'] = canon.canonical_actor(event.name) or event.name
                if event.killer:
                    data['killer'] = canon.canonical_actor(event.killer) or event.killer
            return data

        return {
            'rows': self.rows(),
            'timeline': [entry.to_dict() for entry in self.timeline()],
            'per_second_damage': {actor: self.damage_array(actor).tolist() for actor in sorted(self.damage_series)},
            'per_second_healing': {actor: self.healing_array(actor).tolist() for actor in sorted(self.healing_series)},
            'per_ability': self.ability_table(),
            'per_ability_target': self.ability_target_table(),
            'taken': dict(self.taken),
            'taken_by': {dst: dict(sources) for dst, sources in self.taken_by.items()},
            'defenders': self.defender_metrics(),
            'elements': {
                actor: {key: dict(split) for key, split in abilities.items()}
                for actor, abilities in self.elements.items()
            },
            'damage_events': [e.to_dict() for e in self.store.damage],
            'heal_events': [e.to_dict() for e in self.store.heals],
            'utility_events': [e.to_dict() for e in self.store.utility],
            'death_events': [death_dict(e) for e in self.store.deaths],
            'duration': self.store.duration,
            'window': {'start': start, 'end': end},
            'debug': summary.to_dict(include_unparsed),
        }

#!/usr/bin/env python3
"""
Test the event sink and its derived views.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from swg_combat_tools.analysis.aggregator import (
    AbilityStats, CombatAggregate, DefenderStats, merge_ability_buckets,
)
from swg_combat_tools.log.canonical import CanonContext
from swg_combat_tools.log.events import (
    CRIT, DODGE, GLANCE, HIT, PARRY, PERIODIC, DamageEvent, DeathEvent, EventStore, HealEvent, UtilityEvent,
)


def damage(t, src, dst, amount, flag=HIT, key='slash', **extra):
    return DamageEvent(t=t, src=src, dst=dst, ability=key, ability_key=key, amount=amount, flag=flag, **extra)


def test_ability_buckets_merge():
    table = {'plasma mine 2: and hits': AbilityStats(), 'plasma mine': AbilityStats()}
    table['plasma mine 2: and hits'].add(300)
    table['plasma mine 2: and hits'].add(100)
    table['plasma mine'].add(250)

    merged = merge_ability_buckets(table)
    assert list(merged) == ['plasma mine']
    assert merged['plasma mine'].to_dict() == {'hits': 3, 'damage': 650, 'max': 300}


def test_defender_tallies():
    aggregate = CombatAggregate(EventStore(duration=10, has_timestamps=True))
    aggregate.feed([
        damage(0, 'Bob', 'Goblin', 100),
        damage(1, 'Bob', 'Goblin', 40, flag=GLANCE),
        damage(2, 'Bob', 'Goblin', 200, flag=CRIT, blocked=50),
        damage(3, 'Bob', 'Goblin', 10, flag=PERIODIC),
        damage(4, 'Bob', 'Goblin', 0, flag=DODGE),
        damage(5, 'Bob', 'Goblin', 0, flag=PARRY),
        damage(6, 'Bob', 'Goblin', 80, evaded_pct=25.0),
    ])

    goblin = aggregate.defenders['Goblin']
    assert goblin.hits == 3
    assert goblin.glances == 1
    assert goblin.glance_damage == 40
    assert goblin.dodges == 1
    assert goblin.parries == 1
    assert goblin.attempts == goblin.hits + goblin.glances + goblin.dodges + goblin.parries == 6
    assert goblin.blocks == 1
    assert goblin.blocked_damage == 50
    assert goblin.avg_evaded_pct == 25.0

    metrics = aggregate.defender_metrics()['Goblin']
    for key in ('dodge_pct', 'parry_pct', 'glance_pct', 'block_pct'):
        assert 0 <= metrics[key] <= 100
    assert metrics['dodge_pct'] == round(100 / 6, 2)
    assert metrics['glance_pct'] == 25.0

    assert aggregate.taken['Goblin'] == 430
    assert aggregate.taken_by['Goblin']['Bob'] == 430


def test_empty_defender_percentages():
    stats = DefenderStats()
    assert stats.attempts == 0
    assert stats.dodge_pct == 0
    assert stats.glance_pct == 0


def test_outcome_events_never_add_damage():
    aggregate = CombatAggregate()
    aggregate.record(damage(0, 'Bob', 'Goblin', 75, flag=DODGE))
    assert aggregate.store.damage[0].amount == 0
    assert aggregate.actor_totals() == {}
    assert aggregate.defenders['Goblin'].dodges == 1


def test_self_damage_is_not_taken():
    aggregate = CombatAggregate()
    aggregate.add_damage(damage(0, 'Bob', 'Bob', 30))
    assert aggregate.actor_totals()['Bob']['damage'] == 30
    assert dict(aggregate.taken) == {}
    assert dict(aggregate.defenders) == {}


def test_rows_and_timeline():
    store = EventStore(duration=4, has_timestamps=True)
    aggregate = CombatAggregate(store)
    aggregate.feed([
        damage(0, 'Bob', 'Goblin', 100),
        damage(2, 'Alice', 'Goblin', 300),
        HealEvent(t=3, src='Carol', dst='Bob', ability='Bacta Spray', ability_key='bacta spray', amount=50),
        UtilityEvent(t=1, src='Bob', ability='Rally', ability_key='rally'),
        DeathEvent(t=4, name='Goblin'),
    ])

    rows = aggregate.rows()
    assert [r['name'] for r in rows] == ['Alice', 'Bob', 'Carol']
    assert rows[0]['avg_dps'] == 75.0
    assert rows[2]['healing'] == 50

    timeline = aggregate.timeline()
    assert [entry.second for entry in timeline] == [0, 1, 2, 3, 4]
    assert [entry.dps for entry in timeline] == [100, 0, 300, 0, 0]
    assert [entry.hps for entry in timeline] == [0, 0, 0, 50, 0]
    assert aggregate.damage_array('Bob').tolist() == [100, 0, 0, 0, 0]


def test_record_rejects_unknown_types():
    aggregate = CombatAggregate()
    try:
        aggregate.record(object())
    except TypeError:
        pass
    else:
        raise AssertionError("record() accepted an unknown event type")


def test_folded_merges_aliases_and_drops_new_self_damage():
    canon = CanonContext()
    aggregate = CombatAggregate(EventStore(duration=1, has_timestamps=True))
    aggregate.feed([
        damage(0, 'Jax Effect', 'A Rat', 10, key='plasma mine 2: and hits'),
        damage(1, 'Jax', 'A Rat', 20, key='plasma mine'),
        damage(1, 'Jax Effect', 'Jax', 5),
    ])
    canon.observe('Jax')

    folded = aggregate.folded(canon)
    assert folded.per_ability['Jax']['plasma mine'].to_dict() == {'hits': 2, 'damage': 30, 'max': 20}
    assert folded.actor_totals()['Jax']['damage'] == 35
    assert 'Jax' not in folded.taken
    assert folded.taken['A Rat'] == 30
    # the original is left alone
    assert 'Jax Effect' in aggregate.damage_series


def test_payload_shape():
    aggregate = CombatAggregate(EventStore(duration=2, has_timestamps=True))
    aggregate.add_damage(damage(1, 'Bob', 'Goblin', 10))
    payload = aggregate.to_payload()
    for key in ('rows', 'timeline', 'per_second_damage', 'per_ability', 'per_ability_target', 'taken',
                'taken_by', 'defenders', 'elements', 'damage_events', 'heal_events', 'utility_events',
                'death_events', 'duration', 'window', 'debug'):
        assert key in payload
    assert payload['window'] == {'start': 0, 'end': 2}
    assert payload['per_second_damage']['Bob'] == [0, 10, 0]


if __name__ == "__main__":
    test_ability_buckets_merge()
    test_defender_tallies()
    test_empty_defender_percentages()
    test_outcome_events_never_add_damage()
    test_self_damage_is_not_taken()
    test_rows_and_timeline()
    test_record_rejects_unknown_types()
    test_folded_merges_aliases_and_drops_new_self_damage()
    test_payload_shape()
    print("All aggregator tests passed")

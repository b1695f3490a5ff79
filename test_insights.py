#!/usr/bin/env python3
"""
Test the derived player analytics.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from swg_combat_tools.analysis import insights
from swg_combat_tools.analysis.aggregator import CombatAggregate
from swg_combat_tools.log.events import (
    CRIT, HIT, PERIODIC, DamageEvent, DeathEvent, EventStore, HealEvent, UtilityEvent,
)


def damage(t, src, dst, amount, key='slash', flag=HIT):
    return DamageEvent(t=t, src=src, dst=dst, ability=key, ability_key=key, amount=amount, flag=flag)


def build_aggregate():
    aggregate = CombatAggregate(EventStore(duration=59, has_timestamps=True))
    aggregate.feed([
        damage(0, 'Bob', 'A Rat', 100, key='plasma mine'),
        damage(1, 'Bob', 'A Rat', 300, key='plasma mine', flag=CRIT),
        damage(2, 'Bob', 'A Rat', 50, key='periodic', flag=PERIODIC),
        damage(5, 'Bob', 'A Rat', 100, key='cluster bomb'),
        damage(3, 'Alice', 'A Rat', 60, key='flurry'),
        damage(4, 'Alice', 'A Rat', 60, key='attack'),
        damage(6, 'A Rat', 'Alice', 500),
        HealEvent(t=7, src='Carol', dst='Alice', ability='Bacta Spray', ability_key='bacta spray', amount=200),
        UtilityEvent(t=8, src='Bob', ability='Rally', ability_key='rally'),
        UtilityEvent(t=9, src='Bob', ability='Rally', ability_key='rally'),
        DeathEvent(t=6, name='A Rat', killer='Bob'),
    ])
    return aggregate


def test_peak_window():
    series = np.array([0, 10, 50, 50, 0, 0, 5])
    assert insights.peak_window(series, 2) == (100, 2)
    assert insights.peak_window(np.array([3, 4]), 10) == (7, 0)
    assert insights.peak_window(np.array([], dtype=int), 10) == (0, 0)
    with pytest.raises(ValueError):
        insights.window_sums(series, 0)


def test_burst_profile():
    series = np.array([100, 0, 0, 0, 0, 0, 0, 0, 100, 0])
    profile = insights.burst_profile(series, 1)
    assert profile['windows'] == 2
    assert profile['max'] == 100.0
    assert profile['avg'] == 100.0
    assert profile['score'] == round(100 * 0.7 + 100 * 0.2 + 2 * 0.1, 2)

    assert insights.burst_profile(np.zeros(20), 10)['windows'] == 0


def test_burstiness():
    assert insights.burstiness(np.array([10, 0, 10])) == 0.0
    assert insights.burstiness(np.array([5])) == 0.0
    assert insights.burstiness(np.array([10, 30])) > 0


def test_activity_profile():
    aggregate = build_aggregate()
    profile = insights.activity_profile(aggregate, 'Bob')
    assert profile['active_seconds'] == 6
    assert profile['first_action'] == 0
    assert profile['last_action'] == 9
    assert profile['longest_active'] == 3
    assert profile['uptime_pct'] == 10.0


def test_actions_per_minute():
    apm = insights.actions_per_minute(build_aggregate())
    # Bob: two plasma mine, one cluster bomb, two rally; periodic tick excluded
    assert apm['Bob'] == 5.0
    # Alice: flurry only, auto attack excluded
    assert apm['Alice'] == 1.0
    assert apm['Carol'] == 1.0


def test_decisive_windows():
    decisive = insights.decisive_windows(build_aggregate(), span=5)
    assert len(decisive) == 1
    death = decisive[0]
    assert death['window'] == {'start': 1, 'end': 6}
    assert death['by_actor'] == {'Bob': 450, 'Alice': 120}
    assert death['top_abilities'][0]['ability'] == 'plasma mine'
    assert death['top_abilities'][0]['damage'] == 300
    assert sum(a['share'] for a in death['top_abilities']) == pytest.approx(1.0, abs=0.01)


def test_offense_breakdown():
    offense = insights.offense_breakdown(build_aggregate())['Bob']
    assert offense['counts'][HIT] == 2
    assert offense['counts'][CRIT] == 1
    assert offense['counts'][PERIODIC] == 1
    assert offense['share'][CRIT] == 54.5


def test_infer_classes():
    classes = insights.infer_classes(build_aggregate())
    assert classes['Bob'] == 'Commando'
    assert classes['Alice'] == 'Jedi'
    assert classes['Carol'] == 'Medic'
    assert classes['A Rat'] is None
    assert insights.class_for_ability('burning shot') == 'Bounty Hunter'


def test_grades():
    assert insights.grade(0.95) == 'S'
    assert insights.grade(0.8) == 'A'
    assert insights.grade(0.7) == 'B'
    assert insights.grade(0.5) == 'C'
    assert insights.grade(0.4) == 'D'
    assert insights.grade(0.1) == 'F'


def test_role_scores():
    scores = insights.role_scores(build_aggregate())
    assert set(scores) == {'Bob', 'Alice', 'Carol'}
    assert scores['Bob']['dps'] == 1.0
    assert scores['Alice']['survival'] == 0.3
    assert scores['Bob']['survival'] == 1.0
    for values in scores.values():
        assert 0 <= values['score'] <= 1
        assert values['grade'] in ('S', 'A', 'B', 'C', 'D', 'F')
    assert insights.role_scores(CombatAggregate()) == {}


def test_utility_summary():
    assert insights.utility_summary(build_aggregate()) == {'Bob': {'rally': 2}}


def test_build_player_insights():
    result = insights.build_player_insights(build_aggregate(), {'insights': {'burst_window': 2}})
    assert list(result) == ['Bob', 'Alice', 'Carol']
    bob = result['Bob']
    assert bob['peak'] == {'damage': 400, 'dps': 200.0, 'start': 0}
    assert bob['class'] == 'Commando'
    assert bob['utility'] == {'rally': 2}
    assert bob['decisive'] == [{'t': 6, 'name': 'A Rat', 'damage': 450}]
    assert result['Carol']['decisive'] == []


if __name__ == "__main__":
    test_peak_window()
    test_burst_profile()
    test_burstiness()
    test_activity_profile()
    test_actions_per_minute()
    test_decisive_windows()
    test_offense_breakdown()
    test_infer_classes()
    test_grades()
    test_role_scores()
    test_utility_summary()
    test_build_player_insights()
    print("All insight tests passed")

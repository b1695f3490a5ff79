#!/usr/bin/env python3
"""
Test the ordered line grammars and mitigation extraction.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from swg_combat_tools.log.events import CRIT, DODGE, GLANCE, HIT, MISS, PARRY, STRIKETHROUGH
from swg_combat_tools.log.patterns import (
    DAMAGE, DEATH, DEFENSE, HEAL, PERIODIC_DAMAGE, UTILITY,
    PatternClassifier, classify_line, extract_mitigation, quality_flag,
)


def test_attack_with_ability_and_quality():
    match = classify_line("Bob attacks Goblin with Plasma Mine and hits for 120 points.")
    assert match is not None
    assert match.name == 'attack_with_quality'
    assert match.kind == DAMAGE
    assert match.get('src') == 'Bob'
    assert match.get('dst') == 'Goblin'
    assert match.get('ability') == 'Plasma Mine'
    assert match.amount() == 120
    assert match.quality_flag() == HIT


def test_hit_quality_tokens():
    assert classify_line("Bob attacks Goblin with Slash and crits for 500 points.").quality_flag() == CRIT
    assert classify_line("Bob attacks Goblin with Slash and glances for 50 points.").quality_flag() == GLANCE
    through = classify_line("Bob attacks Goblin using Slash and strikes through for 80 points.")
    assert through.quality_flag() == STRIKETHROUGH
    assert quality_flag('punishing blows') == CRIT
    assert quality_flag(None) == HIT


def test_miss_with_outcome_comes_first():
    match = classify_line("Bob attacks Goblin and misses (dodge).")
    assert match.kind == DEFENSE
    assert match.name == 'attack_misses_outcome'
    assert match.outcome_flag() == DODGE

    match = classify_line("Bob attacks Goblin with Slash and misses (parry).")
    assert match.outcome_flag() == PARRY
    assert match.get('ability') == 'Slash'


def test_plain_miss_and_passive_forms():
    assert classify_line("Bob attacks Goblin and misses.").outcome_flag() == MISS

    match = classify_line("Goblin dodges Bob's Slash.")
    assert match.name == 'defender_avoids'
    assert match.get('src') == 'Bob'
    assert match.get('dst') == 'Goblin'
    assert match.outcome_flag() == DODGE

    match = classify_line("Bob's Slash was parried by Goblin.")
    assert match.name == 'attack_avoided_passive'
    assert match.outcome_flag() == PARRY


def test_utility_death_periodic_heal():
    assert classify_line("Bob performs Rally.").kind == UTILITY
    assert classify_line("Bob performs Paint Target on A Womp Rat.").get('dst') == 'A Womp Rat'

    death = classify_line("Goblin has been slain by Bob.")
    assert death.kind == DEATH
    assert death.get('name') == 'Goblin'
    assert death.get('killer') == 'Bob'

    dot = classify_line("Goblin suffers 30 points of damage from Bleeding over time.")
    assert dot.kind == PERIODIC_DAMAGE
    assert dot.amount() == 30

    heal = classify_line("Alice heals Bob for 200 points with Bacta Spray.")
    assert heal.kind == HEAL
    assert heal.get('ability') == 'Bacta Spray'
    assert heal.amount() == 200


def test_performs_with_amount_is_not_utility():
    match = classify_line("Bob performs Overcharge for 50 points.")
    assert match is None or match.kind != UTILITY


def test_unrecognized_line():
    assert classify_line("Welcome to the server!") is None


def test_iter_matches_keeps_precedence_order():
    classifier = PatternClassifier()
    names = [m.name for m in classifier.iter_matches("Bob attacks Goblin with Slash and hits for 10 points.")]
    assert names[0] == 'attack_with_quality'
    assert 'attack_bare' in names
    assert names.index('attack_with_quality') < names.index('attack_bare')


def test_mitigation_details():
    shorthand = extract_mitigation("Bob attacks Goblin and hits for 100 points (20 absorbed / 5 resisted).", 100)
    assert shorthand.absorbed == 20
    assert shorthand.resisted == 5
    assert shorthand.pre_mitigation == 125

    armor = extract_mitigation("Bob hits Goblin for 100 points. Armor absorbed 30 points out of 130.", 100)
    assert armor.absorbed == 30
    assert armor.pre_mitigation == 130

    blocked = extract_mitigation("Bob attacks Goblin and hits for 60 points and 40 points blocked.", 60)
    assert blocked.blocked == 40

    evaded = extract_mitigation("Bob attacks Goblin and hits for 60 points (12.5% evaded).", 60)
    assert evaded.evaded_pct == 12.5

    nothing = extract_mitigation("Bob attacks Goblin and hits for 60 points.", 60)
    assert nothing.blocked is None and nothing.absorbed is None and nothing.evaded_pct is None


if __name__ == "__main__":
    test_attack_with_ability_and_quality()
    test_hit_quality_tokens()
    test_miss_with_outcome_comes_first()
    test_plain_miss_and_passive_forms()
    test_utility_death_periodic_heal()
    test_performs_with_amount_is_not_utility()
    test_unrecognized_line()
    test_iter_matches_keeps_precedence_order()
    test_mitigation_details()
    print("All pattern tests passed")

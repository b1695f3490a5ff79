#!/usr/bin/env python3
"""
Test elemental damage extraction.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from swg_combat_tools.log.elements import canonical_element, extract_elements, summarize_elements


def test_explicit_list():
    split = extract_elements("Bob attacks Goblin and hits for 500 points (300 heat and 200 kinetic).", 'attack', 500)
    assert split == {'heat': 300, 'kinetic': 200}


def test_explicit_list_is_scaled_to_amount():
    split = extract_elements("Bob attacks Goblin and hits for 100 points (300 heat and 200 kinetic).", 'attack', 100)
    assert split == {'heat': 60, 'kinetic': 40}
    assert sum(split.values()) <= 100


def test_trailing_form():
    split = extract_elements("Bob damages Goblin for 80 points of heat damage.", 'attack', 80)
    assert split == {'heat': 80}


def test_hint_table():
    split = extract_elements("Bob attacks Goblin with Plasma Mine and hits for 120 points.", 'plasma mine', 120)
    assert split == {'heat': 120}


def test_no_breakdown():
    assert extract_elements("Bob attacks Goblin and hits for 50 points.", 'slash', 50) is None
    assert extract_elements("Bob attacks Goblin with Plasma Mine and hits for 0 points.", 'plasma mine', 0) is None


def test_aliases():
    assert canonical_element('Fire') == 'heat'
    assert canonical_element('lightning') == 'electricity'
    assert canonical_element('points') is None


def test_summarize_elements():
    rows = summarize_elements({'Bob': {'plasma mine': {'heat': 75, 'kinetic': 25}}})
    assert rows[0] == {'actor': 'Bob', 'ability': 'plasma mine', 'element': 'heat', 'damage': 75, 'pct': 75.0}
    assert rows[1]['pct'] == 25.0


if __name__ == "__main__":
    test_explicit_list()
    test_explicit_list_is_scaled_to_amount()
    test_trailing_form()
    test_hint_table()
    test_no_breakdown()
    test_aliases()
    test_summarize_elements()
    print("All element tests passed")

#!/usr/bin/env python3
"""
Test actor and ability canonicalization.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from swg_combat_tools.log.canonical import (
    CanonContext, canonical_entity, is_npc, is_valid_actor_text, norm_name,
    normalize_ability, strip_junk,
)


def test_normalize_ability_variants():
    assert normalize_ability('Plasma Mine 2: and hits') == 'plasma mine'
    assert normalize_ability('plasma mine') == 'plasma mine'
    assert normalize_ability('with Focused Beam (Mark 3)') == 'focused beam'
    assert normalize_ability('Force Lightning III') == 'force lightning'
    assert normalize_ability('Mine 2: Plasma Mine') == 'plasma mine'
    assert normalize_ability('Razor Slash and punishing blows') == 'razor slash'
    assert normalize_ability('Vital Strike') == 'vital strike'


def test_normalize_ability_fallback():
    assert normalize_ability(None, 'attack') == 'attack'
    assert normalize_ability('', 'heal') == 'heal'
    assert normalize_ability('(3)', 'attack') == 'attack'


def test_strip_junk():
    assert strip_junk('"Bob"') == 'Bob'
    assert strip_junk('[Bob]') == 'Bob'
    assert strip_junk('Bob.') == 'Bob'
    assert strip_junk('Bob (pet)') == 'Bob (pet)'
    assert strip_junk('[12:01:02] Bob') == 'Bob'


def test_actor_text_checks():
    assert is_valid_actor_text('Bob')
    assert not is_valid_actor_text('with Slash')
    assert not is_valid_actor_text('   ')
    assert is_npc('a womp rat')
    assert not is_npc('Bob')


def test_entity_table():
    assert norm_name('Cmdr. Kenkirk') == 'cmdr kenkirk'
    assert canonical_entity('Cmdr. Kenkirk') == 'Cmdr.Kenkirk'
    assert canonical_entity('Sith Shadow Golem Kizash') == 'Kizash'
    assert canonical_entity('Somebody Else') == 'Somebody Else'


def test_npc_article_case_is_normalized():
    canon = CanonContext()
    assert canon.canonical_actor('a womp rat') == 'A womp rat'
    assert canon.canonical_actor('THE Tusken King') == 'The Tusken King'


def test_default_and_configured_aliases():
    canon = CanonContext.from_config({'canon': {'aliases': {'Vader Sithlord': 'Vader'}}})
    assert canon.canonical_actor('Shepard EffectMass') == 'Shepard'
    assert canon.canonical_actor('vader sithlord') == 'Vader'


def test_effect_suffix_collapses_once_base_is_seen():
    canon = CanonContext()
    assert canon.canonical_actor('Jax Effect') == 'Jax Effect'

    canon.observe('Jax')
    assert 'Jax' in canon.seen
    assert canon.canonical_actor('Jax Effect') == 'Jax'


def test_surname_suffix_collapses_once_base_is_seen():
    canon = CanonContext()
    canon.observe('Lurc')
    assert canon.canonical_actor('Lurc Creeper') == 'Lurc'
    assert canon.canonical_actor('Lurc creeper') == 'Lurc creeper'


def test_observe_ignores_npcs():
    canon = CanonContext()
    assert canon.observe('a womp rat') == 'A womp rat'
    assert canon.seen == set()


if __name__ == "__main__":
    test_normalize_ability_variants()
    test_normalize_ability_fallback()
    test_strip_junk()
    test_actor_text_checks()
    test_entity_table()
    test_npc_article_case_is_normalized()
    test_default_and_configured_aliases()
    test_effect_suffix_collapses_once_base_is_seen()
    test_surname_suffix_collapses_once_base_is_seen()
    test_observe_ignores_npcs()
    print("All canonicalization tests passed")

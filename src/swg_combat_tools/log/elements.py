"""
Elemental damage splits.

A damage line may spell out its elemental composition explicitly, either as
a parenthetical list after the total ("for 500 points (300 heat and 200
kinetic)") or as a single trailing form ("for 120 points of heat damage").
When it does not, a small hint table keyed by ability gives an estimated
split scaled to the hit's amount. Abilities without a hint simply have no
breakdown.
"""

import logging
import re
from collections import defaultdict
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

# Element words seen in logs, mapped to canonical keys
ELEMENT_ALIASES = {
    'heat': 'heat',
    'fire': 'heat',
    'burn': 'heat',
    'burning': 'heat',
    'cold': 'cold',
    'ice': 'cold',
    'frost': 'cold',
    'acid': 'acid',
    'poison': 'acid',
    'electricity': 'electricity',
    'electric': 'electricity',
    'electrical': 'electricity',
    'lightning': 'electricity',
    'shock': 'electricity',
    'kinetic': 'kinetic',
    'energy': 'energy',
    'blast': 'blast',
    'stun': 'stun',
    'lightsaber': 'lightsaber',
}

# Estimated composition by normalized ability key
ELEMENT_HINTS: Dict[str, Dict[str, float]] = {
    'plasma mine': {'heat': 1.0},
    'focused beam': {'energy': 1.0},
    'force lightning': {'electricity': 1.0},
    'force shockwave': {'kinetic': 1.0},
    'maelstrom': {'electricity': 1.0},
}

_EXPLICIT_LIST = re.compile(
    r'for\s+\d+\s+points(?:\s+of\s+damage)?\s*\((?P<body>[^)]*)\)', re.IGNORECASE)
_LIST_TERM = re.compile(r'(?P<amount>\d+)\s+(?P<element>[a-z]+)', re.IGNORECASE)
_TRAILING_FORM = re.compile(
    r'for\s+(?P<amount>\d+)\s+(?:points\s+of\s+)?(?P<element>[a-z]+)(?:\s+damage)?', re.IGNORECASE)


def canonical_element(word: Optional[str]) -> Optional[str]:
    if not word:
        return None
    return ELEMENT_ALIASES.get(word.lower())


def _explicit_list(text: str) -> Optional[Dict[str, int]]:
    match = _EXPLICIT_LIST.search(text)
    if not match:
        return None

    split: Dict[str, int] = defaultdict(int)
    for term in _LIST_TERM.finditer(match.group('body')):
        element = canonical_element(term.group('element'))
        if element:
            split[element] += int(term.group('amount'))
    return dict(split) or None


def _trailing_form(text: str) -> Optional[Dict[str, int]]:
    found = None
    for match in _TRAILING_FORM.finditer(text):
        element = canonical_element(match.group('element'))
        if element:
            found = {element: int(match.group('amount'))}
    return found


def _from_hint(ability_key: str, amount: int) -> Optional[Dict[str, int]]:
    hint = ELEMENT_HINTS.get(ability_key)
    if not hint:
        return None
    return {element: int(amount * ratio) for element, ratio in hint.items()}


def _fit_to_amount(split: Dict[str, int], amount: int) -> Dict[str, int]:
    """Scale sub-amounts down so they never add up to more than the hit."""
    total = sum(split.values())
    if total <= amount:
        return split
    logger.debug(f"Elemental split {split} exceeds amount {amount}, scaling down")
    return {element: (value * amount) // total for element, value in split.items()}


def extract_elements(text: str, ability_key: str, amount: int) -> Optional[Dict[str, int]]:
    """
    Work out the elemental breakdown of a damage line.

    Args:
        text: The line remainder after the timestamp
        ability_key: Normalized ability key, used for the hint table
        amount: Authoritative damage amount of the event

    Returns:
        Mapping of element to sub-amount (sum never above amount), or None
        when neither the line nor the hint table says anything
    """
    if amount <= 0:
        return None

    split = _explicit_list(text) or _trailing_form(text) or _from_hint(ability_key, amount)
    if not split:
        return None

    split = {element: max(0, value) for element, value in _fit_to_amount(split, amount).items()}
    return split or None


def summarize_elements(elements_by_ability: Dict[str, Dict[str, Dict[str, int]]]) -> List[Dict[str, Any]]:
    """
    Flatten per-actor, per-ability element totals into report rows.

    Args:
        elements_by_ability: actor -> ability -> element -> damage

    Returns:
        Rows with actor, ability, element, damage and its share of the
        ability's elemental total, sorted by actor then damage
    """
    rows = []
    for actor, abilities in elements_by_ability.items():
        for ability, split in abilities.items():
            total = sum(split.values())
            for element, damage in split.items():
                rows.append({
                    'actor': actor,
                    'ability': ability,
                    'element': element,
                    'damage': damage,
                    'pct': round(100.0 * damage / total, 1) if total else 0.0,
                })
    rows.sort(key=lambda r: (r['actor'], -r['damage'], r['ability'], r['element']))
    return rows

"""
Combat log line grammars.

A cleaned line (timestamp and channel tag already removed) is tried against
an ordered list of grammars and the first match wins. The order is the
precedence rule:

1. defensive outcomes (dodge, parry, miss) in active and passive voice
2. utility activations ("X performs Y")
3. deaths
4. damage, from explicit ability with hit quality down to the generic
   "damages" and "causes ... to take" fallbacks
5. periodic (over time) damage
6. healing

Mitigation details (blocked, absorbed, resisted, evaded) are pulled from the
whole line independently of which grammar matched.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Pattern

from .events import HIT, CRIT, GLANCE, STRIKETHROUGH, DODGE, PARRY, MISS

DEFENSE = 'defense'
UTILITY = 'utility'
DEATH = 'death'
DAMAGE = 'damage'
PERIODIC_DAMAGE = 'periodic'
HEAL = 'heal'

_QUALITY = r'(?P<quality>hits|crits|glances|strikes\s+through|punishing\s+blows?)(?:\s*\(\d+%[^)]*\))?'
_AMOUNT = r'for\s+(?P<amount>\d+)\s+points'
_END = r'\s*[.!]?\s*$'

QUALITY_FLAGS = {
    'hits': HIT,
    'crits': CRIT,
    'glances': GLANCE,
    'strikes through': STRIKETHROUGH,
    'punishing blow': CRIT,
    'punishing blows': CRIT,
}

OUTCOME_FLAGS = {
    'dodge': DODGE,
    'dodged': DODGE,
    'dodges': DODGE,
    'parry': PARRY,
    'parried': PARRY,
    'parries': PARRY,
}


@dataclass
class LinePattern:
    """One grammar in the ordered list."""
    name: str
    kind: str
    regex: Pattern
    outcome: Optional[str] = None

    def match(self, text: str):
        return self.regex.match(text)


@dataclass
class LineMatch:
    """A grammar hit with its captured fields."""
    pattern: LinePattern
    fields: Dict[str, Optional[str]]
    text: str

    @property
    def kind(self) -> str:
        return self.pattern.kind

    @property
    def name(self) -> str:
        return self.pattern.name

    def get(self, group_name: str, default: Optional[str] = None) -> Optional[str]:
        """Captured group, stripped, or default when the group is absent or empty."""
        value = self.fields.get(group_name)
        if value is None:
            return default
        value = value.strip()
        return value if value else default

    def amount(self) -> int:
        value = self.get('amount')
        return int(value) if value and value.isdigit() else 0

    def quality_flag(self) -> str:
        return quality_flag(self.get('quality'))

    def outcome_flag(self) -> str:
        if self.pattern.outcome:
            return self.pattern.outcome
        return OUTCOME_FLAGS.get((self.get('outcome') or '').lower(), MISS)


@dataclass
class Mitigation:
    """Mitigation details found anywhere on a damage line."""
    blocked: Optional[int] = None
    absorbed: Optional[int] = None
    pre_mitigation: Optional[int] = None
    resisted: Optional[int] = None
    evaded_pct: Optional[float] = None


def quality_flag(token: Optional[str]) -> str:
    """Map a hit-quality token to its flag; a missing token is a plain hit."""
    if not token:
        return HIT
    key = re.sub(r'\s+', ' ', token.lower().strip())
    return QUALITY_FLAGS.get(key, HIT)


def _compile(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


GRAMMARS: List[LinePattern] = [
    # --- Defensive outcomes ---
    LinePattern('attack_misses_outcome', DEFENSE, _compile(
        r'^(?P<src>.+?)\s+attacks\s+(?P<dst>.+?)(?:\s+(?:with|using)\s+(?P<ability>.+?))?'
        r'\s+and\s+misses\s*\(\s*(?P<outcome>dodge|dodged|parry|parried)\s*\)')),
    LinePattern('defender_avoids', DEFENSE, _compile(
        r"^(?P<dst>.+?)\s+(?P<outcome>dodges|parries)\s+(?P<src>.+?)'s?\s+(?P<ability>.+?)" + _END)),
    LinePattern('attack_avoided_passive', DEFENSE, _compile(
        r"^(?P<src>.+?)'s?\s+(?P<ability>.+?)\s+(?:is|was)\s+(?P<outcome>dodged|parried)\s+by\s+(?P<dst>.+?)" + _END)),
    LinePattern('attack_misses', DEFENSE, _compile(
        r'^(?P<src>.+?)\s+attacks\s+(?P<dst>.+?)(?:\s+(?:with|using)\s+(?P<ability>.+?))?\s+and\s+misses\b'),
        outcome=MISS),

    # --- Utility ---
    LinePattern('performs', UTILITY, _compile(
        r'^(?P<src>.+?)\s+performs\s+(?!.*\bfor\s+\d+\s+points)(?P<ability>.+?)(?:\s+on\s+(?P<dst>.+?))?' + _END)),

    # --- Deaths ---
    LinePattern('slain_by', DEATH, _compile(
        r'^(?P<name>.+?)\s+(?:has\s+been|was|is)\s+(?:slain|killed|defeated)(?:\s+by\s+(?P<killer>.+?))?' + _END)),
    LinePattern('dies', DEATH, _compile(
        r'^(?P<name>.+?)\s+(?:dies|died|has\s+died)' + _END)),
    LinePattern('has_slain', DEATH, _compile(
        r'^(?P<killer>.+?)\s+has\s+(?:slain|killed|defeated)\s+(?P<name>.+?)' + _END)),

    # --- Damage, most specific first ---
    LinePattern('attack_with_quality', DAMAGE, _compile(
        r'^(?P<src>.+?)\s+attacks\s+(?P<dst>.+?)\s+(?:with|using)\s+(?P<ability>.+?)\s+and\s+'
        + _QUALITY + r'\s+' + _AMOUNT)),
    LinePattern('uses_on_quality', DAMAGE, _compile(
        r'^(?P<src>.+?)\s+uses\s+(?P<ability>.+?)\s+on\s+(?P<dst>.+?)\s+and\s+' + _QUALITY + r'\s+' + _AMOUNT)),
    LinePattern('attack_with', DAMAGE, _compile(
        r'^(?P<src>.+?)\s+attacks\s+(?P<dst>.+?)\s+(?:with|using)\s+(?P<ability>.+?)\s+(?:and\s+)?' + _AMOUNT)),
    LinePattern('attack_quality', DAMAGE, _compile(
        r'^(?P<src>.+?)\s+attacks\s+(?P<dst>.+?)\s+and\s+' + _QUALITY + r'\s+' + _AMOUNT)),
    LinePattern('attack_bare', DAMAGE, _compile(
        r'^(?P<src>.+?)\s+attacks\s+(?P<dst>.+?)\s+' + _AMOUNT)),
    LinePattern('damages', DAMAGE, _compile(
        r'^(?P<src>.+?)\s+damages\s+(?P<dst>.+?)\s+' + _AMOUNT
        + r'(?:\s+of\s+\w+\s+damage)?(?:\s+(?:with|using)\s+(?P<ability>[^.(]+?))?\s*(?:[.(]|$)')),
    LinePattern('causes_to_take', DAMAGE, _compile(
        r"^(?P<src>.+?)(?:'s?\s+(?P<ability>.+?))?\s+causes\s+(?P<dst>.+?)\s+to\s+take\s+"
        r'(?P<amount>\d+)\s+points')),

    # --- Periodic damage ---
    LinePattern('suffers_over_time', PERIODIC_DAMAGE, _compile(
        r'^(?P<dst>.+?)\s+suffers\s+(?P<amount>\d+)\s+points\s+of\s+(?:\w+\s+)?damage\s+from\s+'
        r'(?P<ability>.+?)\s+over\s+time')),
    LinePattern('deals_over_time', PERIODIC_DAMAGE, _compile(
        r"^(?P<src>.+?)'s?\s+(?P<ability>.+?)\s+deals\s+(?P<amount>\d+)\s+points\s+of\s+(?:\w+\s+)?"
        r'damage\s+to\s+(?P<dst>.+?)\s+over\s+time')),

    # --- Healing ---
    LinePattern('heals', HEAL, _compile(
        r'^(?P<src>.+?)\s+heals\s+(?P<dst>.+?)\s+' + _AMOUNT
        + r'(?:\s+(?:of\s+\w+\s+)?(?:with|using)\s+(?P<ability>[^.(]+?))?\s*(?:[.(]|$)')),
]

# Mitigation suffixes
_BLOCKED = re.compile(r'(?P<blocked>\d+)\s+points?\s+blocked', re.IGNORECASE)
_ARMOR_ABSORBED = re.compile(
    r'armou?r\s+absorbed\s+(?P<absorbed>\d+)\s+points?\s+out\s+of\s+(?P<total>\d+)', re.IGNORECASE)
_ABSORBED_RESISTED = re.compile(
    r'\(\s*(?P<absorbed>\d+)\s+absorbed\s*/\s*(?P<resisted>\d+)\s+resisted\s*\)', re.IGNORECASE)
_EVADED = re.compile(r'\(\s*(?P<pct>\d+(?:\.\d+)?)\s*%\s+evaded\s*\)', re.IGNORECASE)


def extract_mitigation(text: str, amount: int = 0) -> Mitigation:
    """
    Pull blocked, absorbed, resisted and evaded details out of a line.

    Args:
        text: The full line (or its remainder after the timestamp)
        amount: Damage that landed, used to rebuild the pre-mitigation total
            for the "(X absorbed / Y resisted)" shorthand

    Returns:
        Mitigation with every field that was found; absent ones stay None
    """
    mitigation = Mitigation()

    match = _BLOCKED.search(text)
    if match:
        mitigation.blocked = int(match.group('blocked'))

    match = _ARMOR_ABSORBED.search(text)
    if match:
        mitigation.absorbed = int(match.group('absorbed'))
        mitigation.pre_mitigation = int(match.group('total'))
    else:
        match = _ABSORBED_RESISTED.search(text)
        if match:
            mitigation.absorbed = int(match.group('absorbed'))
            mitigation.resisted = int(match.group('resisted'))
            mitigation.pre_mitigation = amount + mitigation.absorbed + mitigation.resisted

    match = _EVADED.search(text)
    if match:
        mitigation.evaded_pct = float(match.group('pct'))

    return mitigation


class PatternClassifier:
    """Evaluates the ordered grammar list against cleaned lines."""

    def __init__(self, patterns: Optional[List[LinePattern]] = None):
        self.patterns = list(patterns) if patterns is not None else list(GRAMMARS)

    def iter_matches(self, text: str) -> Iterator[LineMatch]:
        """Yield every grammar that matches, in precedence order."""
        for pattern in self.patterns:
            match = pattern.match(text)
            if match:
                yield LineMatch(pattern=pattern, fields=match.groupdict(), text=text)

    def classify(self, text: str) -> Optional[LineMatch]:
        """Return the first matching grammar, or None for an unrecognized line."""
        return next(self.iter_matches(text), None)


_default_classifier = PatternClassifier()


def classify_line(text: str) -> Optional[LineMatch]:
    """Classify one cleaned line with the built-in grammar list."""
    return _default_classifier.classify(text)

"""
Actor and ability name canonicalization.

Combat logs spell the same actor and the same ability many ways: pets and
effects carry their owner's name plus a suffix, NPCs arrive with articles
in varying case, and ability text picks up hit-quality clauses, rank
numerals and parenthetical notes. Everything here maps those variants onto
one stable key.

The actor side is stateful. A CanonContext is created once per log session
and handed to the parser, the aggregator and the window re-aggregator; it
learns which standalone actors exist while lines are ingested.
"""

import logging
import re
import threading
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)

# Aliases known before any line is read
DEFAULT_ALIASES = {
    'Shepard EffectMass': 'Shepard',
    'Lurcio Leering-Creeper': 'Lurcio',
}

# Boss and NPC spellings keyed by norm_name()
ENTITY_CANON = {
    'old man': 'An Old Man',
    'sith golem kizash': 'Kizash',
    'sith shadow golem kizash': 'Kizash',
    'kizash': 'Kizash',
    'cmdr kenkirk': 'Cmdr.Kenkirk',
    'commander kenkirk': 'Cmdr.Kenkirk',
    'krix swiftshadow': 'Krix Swiftshadow',
    'ig-88': 'IG-88',
    'ig 88': 'IG-88',
    'sinya nilim': 'Sinya Nilim',
    'exar kun': 'Exar Kun',
    'axkva min': 'Axkva Min',
    'tusken king': 'Tusken King',
    'jelanna': 'Jelanna',
    'jelanna armor': 'Jelanna',
    'jelanna armorr': 'Jelanna',
    'aldezz': 'Aldezz',
    'aldezz rams': 'Aldezz',
}

NPC_ARTICLES = {'a': 'A', 'an': 'An', 'the': 'The'}

_LEAKED_TIMESTAMP = re.compile(r'\[\s*\d{1,2}:\d{2}(?::\d{2})?\s*\]')
_QUOTES = re.compile(r'["`“”‘]')
_WRAPPED = re.compile(r"^[\[\(<]\s*(.*?)\s*[\]\)>]$")
_TRAILING_PUNCT = re.compile(r"[.,;:!?']+$")
_SPACES = re.compile(r'\s+')

_INVALID_ACTOR = re.compile(r'^(?:with|using)\b', re.IGNORECASE)
_NPC_PREFIX = re.compile(r'^(a|an|the)\s+(.+)$', re.IGNORECASE)
_EFFECT_SUFFIX = re.compile(r"^([A-Za-z][\w']+)\s+(Effect[\w'-]*)$")
_BASE_SUFFIX = re.compile(r"^([A-Za-z][\w']+)[\s-]+([A-Za-z][\w'-]+)$")
_SURNAME_LIKE = re.compile(r"^[A-Z][A-Za-z'-]*$")

_NORM_DROP = re.compile(r"[\"'`,:;!?()\[\]]")
_CORPSE_OF = re.compile(r'\bcorpse of\s+')

# Ability text cleanup, applied in order
_ABILITY_LEAD = re.compile(r'^(?:with|using)\s+')
_MINE_PREFIX = re.compile(r'^mine\s*\d*\s*:\s*')
_QUALITY_CLAUSE = re.compile(
    r'[\s.\-]+and\s+(?:\d+\s+points?\s+blocked|strikes?\s+through|hits|glances|crits'
    r'|punishing\s+blows?)(?:\s*\(\d+%[^)]*\))?'
)
_PUNISHING = re.compile(r'\band\s+punishing\s+blows?\b')
_DOT_AND = re.compile(r'\.and\b')
_BRACKETED = re.compile(r'[\(\[][^)\]]*[\)\]]')
_MARK = re.compile(r'\bmark\s*\d+\b')
_ROMAN = re.compile(r'\b(?=[ivx])x{0,3}(?:ix|iv|v?i{0,3})\b')
_NUMBER = re.compile(r'\b\d+\b')
_MINE_PLASMA_MINE = re.compile(r'\bmine\s+plasma\s+mine\b')
_ABILITY_PUNCT = re.compile(r'[.:;,!?/\-–—]+')


def strip_junk(raw: str) -> str:
    """Remove quote and bracket artifacts and leaked timestamps from a name."""
    if not raw:
        return ''
    name = _LEAKED_TIMESTAMP.sub(' ', raw)
    name = _QUOTES.sub('', name)
    wrapped = _WRAPPED.match(name.strip())
    if wrapped:
        name = wrapped.group(1)
    name = _TRAILING_PUNCT.sub('', name)
    return _SPACES.sub(' ', name).strip()


def is_valid_actor_text(raw: Optional[str]) -> bool:
    """A captured actor that starts with 'with' or 'using' is a misparse of ability text."""
    return bool(raw and raw.strip()) and not _INVALID_ACTOR.match(raw.strip())


def is_npc(name: str) -> bool:
    return bool(name) and _NPC_PREFIX.match(name) is not None


def normalize_npc(name: str) -> str:
    """Normalize the leading article's case; the rest of the name is kept verbatim."""
    match = _NPC_PREFIX.match(name)
    if not match:
        return name
    article, rest = match.groups()
    return f"{NPC_ARTICLES[article.lower()]} {rest}"


def norm_name(name: Optional[str]) -> str:
    """Loose lookup key for boss and instance tables."""
    if not name:
        return ''
    key = name.lower().replace('.', ' ')
    key = _NORM_DROP.sub('', key)
    key = _CORPSE_OF.sub('', key)
    return _SPACES.sub(' ', key).strip()


def canonical_entity(name: str) -> str:
    """Map a known boss/NPC spelling to its display name, else return the name unchanged."""
    return ENTITY_CANON.get(norm_name(name), name)


def normalize_ability(raw: Optional[str], fallback: str = '') -> str:
    """
    Fold an ability's raw text into its aggregation key.

    Args:
        raw: Ability text as captured from the log line
        fallback: Key to use when nothing survives the cleanup

    Returns:
        Lower-case key such as 'plasma mine'

    Examples:
        >>> normalize_ability('Plasma Mine 2: and hits')
        'plasma mine'
        >>> normalize_ability('with Focused Beam (Mark 3)')
        'focused beam'
    """
    if not raw:
        return fallback

    key = raw.lower().strip()
    key = _ABILITY_LEAD.sub('', key)
    key = _MINE_PREFIX.sub('', key)
    key = _QUALITY_CLAUSE.sub('', key)
    key = _PUNISHING.sub('', key)
    key = _DOT_AND.sub('', key)
    key = _BRACKETED.sub(' ', key)
    key = _MARK.sub(' ', key)
    key = _ROMAN.sub(' ', key)
    key = _NUMBER.sub(' ', key)
    key = _MINE_PLASMA_MINE.sub('plasma mine', key)
    key = _ABILITY_PUNCT.sub(' ', key)
    key = _SPACES.sub(' ', key).strip()

    return key or fallback


class CanonContext:
    """
    Alias table, seen-actor set and resolution cache for one log session.

    Ingestion calls observe() for every actor it records, which both resolves
    the name and remembers it as a standalone actor. Read-time code calls
    canonical_actor(), which never grows the seen set. The cache is dropped
    whenever a new actor is seen so that late aliases apply to every name.
    """

    def __init__(self, aliases: Optional[Dict[str, str]] = None):
        self.aliases: Dict[str, str] = {k.lower(): v for k, v in DEFAULT_ALIASES.items()}
        for raw, canonical in (aliases or {}).items():
            self.aliases[raw.lower()] = canonical
        self.seen: Set[str] = set()
        self._cache: Dict[str, str] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: Optional[Dict]) -> 'CanonContext':
        aliases = ((config or {}).get('canon') or {}).get('aliases') or {}
        return cls(aliases)

    def canonical_actor(self, raw: Optional[str]) -> str:
        """
        Resolve raw actor text to its canonical name.

        Args:
            raw: Actor text from a log line

        Returns:
            Canonical name, or '' when nothing usable is left
        """
        if not raw:
            return ''

        with self._lock:
            cached = self._cache.get(raw)
            if cached is not None:
                return cached
            resolved = self._resolve(raw)
            self._cache[raw] = resolved
            return resolved

    def observe(self, raw: Optional[str]) -> str:
        """Resolve an actor at ingestion time and record it as seen."""
        canonical = self.canonical_actor(raw)
        if not canonical or is_npc(canonical):
            return canonical

        with self._lock:
            if canonical not in self.seen:
                self.seen.add(canonical)
                self._cache.clear()
                logger.debug(f"New actor seen: {canonical}")
        return canonical

    def _resolve(self, raw: str) -> str:
        name = strip_junk(raw)
        if not name:
            return ''

        if is_npc(name):
            return normalize_npc(name)

        alias = self.aliases.get(name.lower())
        if alias:
            return alias

        entity = ENTITY_CANON.get(norm_name(name))
        if entity:
            return entity

        match = _EFFECT_SUFFIX.match(name)
        if match and match.group(1) in self.seen:
            return match.group(1)

        match = _BASE_SUFFIX.match(name)
        if match and _SURNAME_LIKE.match(match.group(2)) and match.group(1) in self.seen:
            return match.group(1)

        return name

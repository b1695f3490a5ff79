"""
Combat Log Parser

Turns a combat log text blob into typed events and feeds them to the event
sink. One call to parse_text() is one parse pass: it splits and
deduplicates lines, separates the timestamp (and optional channel tag) from
each line, classifies the remainder with the ordered grammar list and
dispatches the match to the handler for its event kind.

The canonicalization context passed in (or created from config) is the only
state that outlives a pass; everything else is rebuilt each time.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .canonical import CanonContext, is_npc, is_valid_actor_text, normalize_ability
from .elements import extract_elements
from .events import (
    DamageEvent, HealEvent, UtilityEvent, DeathEvent, EventStore, ParseSummary, PERIODIC,
)
from .patterns import (
    DEFENSE, UTILITY, DEATH, DAMAGE, PERIODIC_DAMAGE, HEAL,
    LineMatch, PatternClassifier, extract_mitigation,
)
from ..analysis.aggregator import CombatAggregate

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = re.compile(
    r'^\s*(?:\[\s*(?P<channel>[^\]]*?)\s*\]\s*)?(?P<hh>\d{1,2}):(?P<mm>\d{2}):(?P<ss>\d{2})\s*(?P<rest>.*)$'
)

SELF_REFERENCES = {'himself', 'herself', 'itself', 'themselves', 'themself', 'yourself'}

ProgressCallback = Callable[[int, int], None]


def split_lines(text: str) -> List[str]:
    """Normalize CRLF and CR line endings and split into lines."""
    if not text:
        return []
    return text.replace('\r\n', '\n').replace('\r', '\n').split('\n')


@dataclass
class HandlerResult:
    """Result carrier for grammar handlers."""
    event: Optional[Any] = None
    handled: bool = True  # False lets the next grammar try the line
    ignored: bool = False


@dataclass
class ParseOutcome:
    """Everything one parse pass produced."""
    store: EventStore
    aggregate: CombatAggregate
    summary: ParseSummary
    canon: CanonContext
    collect_unparsed: bool = False

    def folded(self) -> CombatAggregate:
        """Full-range aggregate with the session's final canonical names."""
        return self.aggregate.folded(self.canon)

    def to_payload(self) -> Dict[str, Any]:
        return self.folded().to_payload(self.summary, self.collect_unparsed, self.canon)


class CombatLogParser:
    """
    Parser for timestamped combat log text.

    Attributes:
        DEFAULT_MAX_HIT (int): Largest believable single hit from a non-NPC source
        PROGRESS_INTERVAL (int): Lines between progress callbacks
        LINE_SAMPLE_MAX_LENGTH (int): Unparsed line samples are cut to this length
    """

    DEFAULT_MAX_HIT = 60000
    PROGRESS_INTERVAL = 5000
    MAX_UNPARSED_SAMPLES = 50
    LINE_SAMPLE_MAX_LENGTH = 200

    def __init__(self,
                 config: Optional[Dict[str, Any]] = None,
                 canon: Optional[CanonContext] = None,
                 classifier: Optional[PatternClassifier] = None):
        """
        Initialize the parser.

        Args:
            config: Optional configuration dictionary ('parser' and 'canon' sections)
            canon: Canonicalization context to share with other passes of the
                same log session; created from config when omitted
            classifier: Grammar list to use; the built-in order when omitted
        """
        self.config = config or {}
        parser_cfg = self.config.get('parser', {}) or {}
        self.max_hit = int(parser_cfg.get('max_hit', self.DEFAULT_MAX_HIT))
        self.progress_interval = max(1, int(parser_cfg.get('progress_interval', self.PROGRESS_INTERVAL)))
        self.max_unparsed_samples = int(parser_cfg.get('max_unparsed_samples', self.MAX_UNPARSED_SAMPLES))

        self.canon = canon if canon is not None else CanonContext.from_config(self.config)
        self.classifier = classifier or PatternClassifier()

        self._handlers = {
            DEFENSE: self._handle_defense,
            UTILITY: self._handle_utility,
            DEATH: self._handle_death,
            DAMAGE: self._handle_damage,
            PERIODIC_DAMAGE: self._handle_periodic,
            HEAL: self._handle_heal,
        }
        self._sink: Optional[CombatAggregate] = None
        self._dot_casters: Dict[Tuple[str, str], str] = {}

    def parse_file(self, log_file: str, collect_unparsed: bool = False,
                   progress: Optional[ProgressCallback] = None) -> ParseOutcome:
        """
        Parse a combat log file.

        Args:
            log_file: Path to the log file
            collect_unparsed: Count and sample lines no grammar recognized
            progress: Optional callback receiving (done, total) line counts

        Returns:
            ParseOutcome for the file
        """
        log_path = Path(log_file)
        if not log_path.exists():
            raise FileNotFoundError(f"Combat log file not found: {log_path}")

        logger.info(f"Parsing combat log file: {log_path}")
        with open(log_path, 'r', encoding='utf-8', errors='ignore') as f:
            text = f.read()
        return self.parse_text(text, collect_unparsed=collect_unparsed, progress=progress)

    def parse_text(self, text: str, collect_unparsed: bool = False,
                   progress: Optional[ProgressCallback] = None) -> ParseOutcome:
        """
        Run one parse pass over a text blob.

        Args:
            text: Newline separated log lines
            collect_unparsed: Count and sample lines no grammar recognized
            progress: Optional callback receiving (done, total) line counts

        Returns:
            ParseOutcome holding the event store, the ingestion-time
            aggregate, the parse summary and the canonicalization context
        """
        summary = ParseSummary()
        store = EventStore()
        self._sink = CombatAggregate(store)
        self._dot_casters = {}

        lines = split_lines(text)
        total = len(lines)
        summary.total_lines = total

        base_seconds = None
        max_t = 0
        previous = None

        for line_number, line in enumerate(lines, 1):
            if progress and line_number % self.progress_interval == 0:
                progress(line_number, total)

            if line == previous and line.strip():
                summary.duplicates_dropped += 1
                continue
            previous = line

            if not line.strip():
                continue

            stamp = TIMESTAMP_PATTERN.match(line)
            if not stamp:
                self._note_unparsed(summary, line, line_number, collect_unparsed)
                continue

            absolute = int(stamp.group('hh')) * 3600 + int(stamp.group('mm')) * 60 + int(stamp.group('ss'))
            if base_seconds is None:
                base_seconds = absolute
            t = absolute - base_seconds
            if t < 0:
                summary.out_of_order += 1
                logger.debug(f"Line {line_number} is earlier than the first timestamp, skipped")
                continue

            store.has_timestamps = True
            max_t = max(max_t, t)

            result = self._parse_line(stamp.group('rest').strip(), t, line_number)
            if not result.handled:
                self._note_unparsed(summary, line, line_number, collect_unparsed)
                continue

            summary.parsed += 1
            if result.ignored:
                summary.ignored += 1

        store.duration = max_t
        if progress:
            progress(total, total)

        logger.info(f"Parsed {summary.parsed} of {summary.total_lines} lines "
                    f"({summary.duplicates_dropped} duplicates dropped, {summary.ignored} ignored)")
        if summary.unparsed:
            logger.warning(f"Found {summary.unparsed} unrecognized lines")

        outcome = ParseOutcome(store=store, aggregate=self._sink, summary=summary,
                               canon=self.canon, collect_unparsed=collect_unparsed)
        self._sink = None
        return outcome

    def _note_unparsed(self, summary: ParseSummary, line: str, line_number: int, collect: bool):
        logger.debug(f"NO PATTERN MATCHED FOR LINE {line_number}")
        if not collect:
            return
        summary.unparsed += 1
        if len(summary.unparsed_samples) < self.max_unparsed_samples:
            sample = line[:self.LINE_SAMPLE_MAX_LENGTH]
            summary.unparsed_samples.append(f"Line {line_number}: {sample}")

    def _parse_line(self, text: str, t: int, line_number: int) -> HandlerResult:
        """
        Classify one line remainder and hand it to its event handler.

        Grammars are tried in precedence order; a handler that declines a
        match lets the next grammar have the line.
        """
        for match in self.classifier.iter_matches(text):
            logger.debug(f"Line {line_number} matched grammar: {match.name}")
            result = self._handlers[match.kind](match, t)
            if result.handled:
                return result
        return HandlerResult(handled=False)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _actor_pair(self, match: LineMatch) -> Tuple[str, str]:
        """Resolve source and destination, mapping 'himself' style targets to the source."""
        src = self.canon.observe(match.get('src'))
        dst_raw = match.get('dst')
        if dst_raw and dst_raw.lower() in SELF_REFERENCES:
            return src, src
        return src, self.canon.observe(dst_raw)

    def _over_ceiling(self, src: str, amount: int) -> bool:
        if amount > self.max_hit and not is_npc(src):
            logger.debug(f"Ignoring {amount} point hit from {src}: above {self.max_hit}")
            return True
        return False

    def _handle_defense(self, match: LineMatch, t: int) -> HandlerResult:
        if not is_valid_actor_text(match.get('src')):
            return HandlerResult(handled=False)
        src, dst = self._actor_pair(match)
        if not src or not dst:
            return HandlerResult(handled=False)

        ability = match.get('ability', 'attack')
        event = DamageEvent(t=t, src=src, dst=dst, ability=ability,
                            ability_key=normalize_ability(ability, 'attack'),
                            amount=0, flag=match.outcome_flag())
        self._sink.add_defense(event)
        return HandlerResult(event=event)

    def _handle_utility(self, match: LineMatch, t: int) -> HandlerResult:
        if not is_valid_actor_text(match.get('src')):
            return HandlerResult(handled=False)
        src = self.canon.observe(match.get('src'))
        ability = match.get('ability')
        key = normalize_ability(ability)
        if not src or not key:
            return HandlerResult(handled=False)

        dst = match.get('dst')
        event = UtilityEvent(t=t, src=src, ability=ability, ability_key=key,
                             dst=self.canon.observe(dst) if dst else None)
        self._sink.add_utility(event)
        return HandlerResult(event=event)

    def _handle_death(self, match: LineMatch, t: int) -> HandlerResult:
        name = match.get('name')
        if not name:
            return HandlerResult(handled=False)
        event = DeathEvent(t=t, name=name, killer=match.get('killer'))
        self._sink.add_death(event)
        return HandlerResult(event=event)

    def _handle_damage(self, match: LineMatch, t: int) -> HandlerResult:
        if not is_valid_actor_text(match.get('src')):
            return HandlerResult(handled=False)
        src, dst = self._actor_pair(match)
        if not src or not dst:
            return HandlerResult(handled=False)

        amount = match.amount()
        if self._over_ceiling(src, amount):
            return HandlerResult(ignored=True)

        ability = match.get('ability', 'attack')
        key = normalize_ability(ability, 'attack')
        event = self._damage_event(match, t, src, dst, ability, key, amount, match.quality_flag())
        self._dot_casters[(key, dst)] = src
        self._sink.add_damage(event)
        return HandlerResult(event=event)

    def _handle_periodic(self, match: LineMatch, t: int) -> HandlerResult:
        dst = self.canon.observe(match.get('dst'))
        if not dst:
            return HandlerResult(handled=False)

        ability = match.get('ability', '')
        key = normalize_ability(ability)
        explicit_src = match.get('src')
        if is_valid_actor_text(explicit_src):
            src = self.canon.observe(explicit_src)
        else:
            src = self._dot_casters.get((key, dst)) or key or 'Periodic'

        amount = match.amount()
        if self._over_ceiling(src, amount):
            return HandlerResult(ignored=True)

        event = self._damage_event(match, t, src, dst, ability or 'periodic', key or 'periodic',
                                   amount, PERIODIC)
        self._sink.add_damage(event)
        return HandlerResult(event=event)

    def _handle_heal(self, match: LineMatch, t: int) -> HandlerResult:
        if not is_valid_actor_text(match.get('src')):
            return HandlerResult(handled=False)
        src, dst = self._actor_pair(match)
        if not src or not dst:
            return HandlerResult(handled=False)

        ability = match.get('ability', 'heal')
        event = HealEvent(t=t, src=src, dst=dst, ability=ability,
                          ability_key=normalize_ability(ability, 'heal'), amount=match.amount())
        self._sink.add_heal(event)
        return HandlerResult(event=event)

    def _damage_event(self, match: LineMatch, t: int, src: str, dst: str, ability: str,
                      key: str, amount: int, flag: str) -> DamageEvent:
        mitigation = extract_mitigation(match.text, amount)
        return DamageEvent(
            t=t, src=src, dst=dst, ability=ability, ability_key=key, amount=amount, flag=flag,
            blocked=mitigation.blocked,
            absorbed=mitigation.absorbed,
            pre_mitigation=mitigation.pre_mitigation,
            resisted=mitigation.resisted,
            evaded_pct=mitigation.evaded_pct,
            elements=extract_elements(match.text, key, amount),
        )


def parse_text(text: str, config: Optional[Dict[str, Any]] = None,
               canon: Optional[CanonContext] = None, collect_unparsed: bool = False) -> ParseOutcome:
    """Parse a text blob with a throwaway parser."""
    return CombatLogParser(config, canon).parse_text(text, collect_unparsed=collect_unparsed)

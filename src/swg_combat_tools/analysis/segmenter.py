"""
Encounter segmentation.

Splits the dense per-second timeline into encounters: runs of activity
separated by at least `idle_gap` quiet seconds. Each encounter is named
after the known boss that took the most damage inside it.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from ..log.canonical import norm_name
from ..log.events import DamageEvent, Segment, TimelineEntry

logger = logging.getLogger(__name__)

# Boss name (norm_name form) to the instance it belongs to
NPC_TO_INSTANCE = {
    'sinya nilim': 'Sinya Nilm',
    'sith golem kizash': 'Kizash',
    'sith shadow golem kizash': 'Kizash',
    'kizash': 'Kizash',
    'an old man': 'Dark Side Mellichae',
    'mellichae': 'Light Side Mellichae',
    'tusken king': 'Tusken King',
    'axkva min': 'Axkva Min',
    'ig-88': 'IG-88',
    'exar kun': 'Exar Kun',
    'cmdr kenkirk': 'ISD',
    'commander kenkirk': 'ISD',
    'krix swiftshadow': 'ISD',
    'harwakokok the mighty': 'Avatar Hardmode',
}


def to_mmss(seconds: int) -> str:
    """Format seconds as MM:SS (minutes are not wrapped at 60)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class Segmenter:
    """
    Idle-gap encounter detector.

    Args:
        idle_gap: Quiet seconds that end an encounter (default 60)
        instance_table: Boss name to instance label mapping, keyed by norm_name()
    """

    DEFAULT_IDLE_GAP = 60

    def __init__(self, idle_gap: int = DEFAULT_IDLE_GAP, instance_table: Optional[Dict[str, str]] = None):
        if idle_gap <= 0:
            raise ValueError(f"Idle gap must be positive, got {idle_gap}")
        self.idle_gap = int(idle_gap)
        self.instance_table = instance_table if instance_table is not None else NPC_TO_INSTANCE

    @classmethod
    def from_config(cls, config: Optional[Dict]) -> 'Segmenter':
        idle_gap = ((config or {}).get('segments') or {}).get('idle_gap', cls.DEFAULT_IDLE_GAP)
        return cls(idle_gap=int(idle_gap))

    def spans(self, timeline: Sequence[TimelineEntry]) -> List[tuple]:
        """
        Find the (start, end) spans of activity.

        A second is active when its aggregate dps or hps is above zero. A
        span closes once the distance from its last active second to the
        next second reaches the idle gap; past the last entry the stream is
        treated as silent.
        """
        spans = []
        run_start = None
        last_active = None

        for index, entry in enumerate(timeline):
            if entry.dps > 0 or entry.hps > 0:
                if run_start is None:
                    run_start = entry.second
                last_active = entry.second

            if run_start is None:
                continue

            if index + 1 < len(timeline):
                next_second = timeline[index + 1].second
            else:
                next_second = entry.second + self.idle_gap + 1

            if next_second - last_active >= self.idle_gap:
                spans.append((run_start, last_active))
                run_start = None
                last_active = None

        return spans

    def label_for(self, start: int, end: int, damage_events: Sequence[DamageEvent], ordinal: int) -> Segment:
        """Name a span after the instance boss that took the most damage in it."""
        damage_by_target: Dict[str, int] = defaultdict(int)
        for event in damage_events:
            if start <= event.t <= end and event.amount > 0:
                damage_by_target[norm_name(event.dst)] += event.amount

        instance = None
        best = 0
        for target, damage in damage_by_target.items():
            candidate = self.instance_table.get(target)
            if candidate and damage > best:
                instance, best = candidate, damage

        core = instance or f"#{ordinal}"
        label = f"{core} {to_mmss(start)}-{to_mmss(end)} ({to_mmss(end - start)})"
        return Segment(start=start, end=end, label=label, instance=instance)

    def derive(self, timeline: Sequence[TimelineEntry], damage_events: Sequence[DamageEvent]) -> List[Segment]:
        """
        Partition a timeline into labelled encounters.

        Args:
            timeline: Dense per-second timeline, ordered by second
            damage_events: Damage events used to pick each label

        Returns:
            Non-overlapping segments ordered by start second
        """
        segments = [
            self.label_for(start, end, damage_events, ordinal)
            for ordinal, (start, end) in enumerate(self.spans(timeline), 1)
        ]
        logger.info(f"Detected {len(segments)} encounter(s) with idle gap {self.idle_gap}s")
        return segments

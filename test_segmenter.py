#!/usr/bin/env python3
"""
Test idle-gap encounter detection.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from swg_combat_tools.analysis.segmenter import Segmenter, to_mmss
from swg_combat_tools.log.events import DamageEvent, TimelineEntry
from swg_combat_tools.log.parser import parse_text


def make_timeline(active, length):
    return [TimelineEntry(second=s, dps=10 if s in active else 0, hps=0) for s in range(length)]


def hit(t, dst, amount):
    return DamageEvent(t=t, src='Bob', dst=dst, ability='slash', ability_key='slash', amount=amount, flag='hit')


def test_two_encounters_split_by_idle_gap():
    active = set(range(0, 6)) | set(range(66, 71))
    segments = Segmenter(idle_gap=60).derive(make_timeline(active, 71), [])
    assert [(s.start, s.end) for s in segments] == [(0, 5), (66, 70)]


def test_short_pause_does_not_split():
    active = set(range(0, 6)) | set(range(30, 36))
    segments = Segmenter(idle_gap=60).derive(make_timeline(active, 36), [])
    assert [(s.start, s.end) for s in segments] == [(0, 35)]


def test_healing_counts_as_activity():
    timeline = [TimelineEntry(second=0, dps=0, hps=0), TimelineEntry(second=1, dps=0, hps=25)]
    assert Segmenter().spans(timeline) == [(1, 1)]


def test_no_activity():
    assert Segmenter().derive(make_timeline(set(), 10), []) == []
    assert Segmenter().derive([], []) == []


def test_labels():
    active = set(range(0, 6)) | set(range(66, 71))
    events = [hit(2, 'Exar Kun', 500), hit(3, 'A Cultist', 900), hit(67, 'A Cultist', 100)]
    first, second = Segmenter(idle_gap=60).derive(make_timeline(active, 71), events)

    assert first.instance == 'Exar Kun'
    assert first.label == 'Exar Kun 00:00-00:05 (00:05)'
    assert second.instance is None
    assert second.label == '#2 01:06-01:10 (00:04)'
    assert second.to_dict()['duration'] == 5


def test_canonical_boss_names_keep_their_instance():
    segment = Segmenter().derive(make_timeline({0, 1}, 2), [hit(0, 'Cmdr.Kenkirk', 300)])[0]
    assert segment.instance == 'ISD'

    text = ("00:00:00 Bob attacks Commander Kenkirk for 100 points.\n"
            "00:00:03 Bob attacks Cmdr Kenkirk for 100 points.\n")
    outcome = parse_text(text)
    assert {e.dst for e in outcome.store.damage} == {'Cmdr.Kenkirk'}
    segments = Segmenter().derive(outcome.folded().timeline(), outcome.store.damage)
    assert [(s.label, s.instance) for s in segments] == [('ISD 00:00-00:03 (00:03)', 'ISD')]


def test_idle_gap_validation_and_config():
    try:
        Segmenter(idle_gap=0)
    except ValueError:
        pass
    else:
        raise AssertionError("idle gap of 0 was accepted")

    assert Segmenter.from_config({'segments': {'idle_gap': 30}}).idle_gap == 30
    assert Segmenter.from_config(None).idle_gap == 60


def test_to_mmss():
    assert to_mmss(0) == '00:00'
    assert to_mmss(75) == '01:15'
    assert to_mmss(3700) == '61:40'


if __name__ == "__main__":
    test_two_encounters_split_by_idle_gap()
    test_short_pause_does_not_split()
    test_healing_counts_as_activity()
    test_no_activity()
    test_labels()
    test_canonical_boss_names_keep_their_instance()
    test_idle_gap_validation_and_config()
    test_to_mmss()
    print("All segmenter tests passed")

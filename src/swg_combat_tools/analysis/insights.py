"""
Derived player analytics.

Everything here reads a window's CombatAggregate (usually the output of
window.reaggregate, so names are already canonical) and produces plain
dictionaries for reports: burst and peak windows, activity and APM, the
damage that landed just before each death, a profession guess, and an
overall letter grade.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..log.canonical import is_npc
from ..log.events import CRIT, GLANCE, HIT, PERIODIC, STRIKETHROUGH
from .aggregator import CombatAggregate

logger = logging.getLogger(__name__)

DEFAULT_BURST_WINDOW = 10
DEFAULT_DECISIVE_WINDOW = 5

# Burst windows must reach this share of the best window
BURST_THRESHOLD = 0.6
# Windows skipped after each counted burst window
BURST_STRIDE = 6

APM_BUCKET = 0.25
APM_IGNORED_ABILITIES = ('periodic', 'attack', 'and hits')

# Weights of the overall score; each input is normalized across the roster
SCORE_WEIGHTS = {
    'dps': 0.35,
    'burst': 0.2,
    'apm': 0.15,
    'uptime': 0.2,
    'survival': 0.1,
}

GRADE_THRESHOLDS = (
    (0.9, 'S'),
    (0.8, 'A'),
    (0.65, 'B'),
    (0.5, 'C'),
    (0.35, 'D'),
)

ABILITY_CLASS_MAP = {
    'ambush': 'Bounty Hunter',
    'assault': 'Bounty Hunter',
    'burn': 'Bounty Hunter',
    'razor net': 'Bounty Hunter',
    'tangle net': 'Bounty Hunter',
    'fumble': 'Bounty Hunter',
    'plasma mine': 'Commando',
    'cluster bomb': 'Commando',
    'bomblet': 'Commando',
    'focus beam': 'Commando',
    'focused beam': 'Commando',
    'lethal beam': 'Commando',
    'mine': 'Commando',
    'cryoban grenade': 'Commando',
    'sure shot': 'Officer',
    'overcharge': 'Officer',
    'paint target': 'Officer',
    'artillery strike': 'Officer',
    'core bomb': 'Officer',
    'flurry': 'Jedi',
    'strike': 'Jedi',
    'sweep': 'Jedi',
    'force shockwave': 'Jedi',
    'maelstrom': 'Jedi',
    'force drain': 'Jedi',
    'force lightning': 'Jedi',
    'force throw': 'Jedi',
    'precision strike': 'Smuggler',
    'concussion shot': 'Smuggler',
    'covering fire': 'Smuggler',
    'fan shot': 'Smuggler',
    'brawler strike': 'Smuggler',
    'pin down': 'Smuggler',
    'pistol whip': 'Smuggler',
    'razor slash': 'Spy',
    'blaster burst': 'Spy',
    "assassin's mark": 'Spy',
    'assassinate': 'Spy',
    "spy's fang": 'Spy',
    'bacta burst': 'Medic',
    'bacta spray': 'Medic',
    'bacta ampule': 'Medic',
    'vital strike': 'Medic',
}


def _settings(config: Optional[Dict]) -> Dict[str, int]:
    section = (config or {}).get('insights') or {}
    return {
        'burst_window': int(section.get('burst_window', DEFAULT_BURST_WINDOW)),
        'decisive_window': int(section.get('decisive_window', DEFAULT_DECISIVE_WINDOW)),
    }


def window_sums(series: np.ndarray, k: int) -> np.ndarray:
    """All trailing k-second sums of a per-second series (one value when shorter than k)."""
    series = np.asarray(series, dtype=np.int64)
    if k <= 0:
        raise ValueError(f"Window length must be positive, got {k}")
    if len(series) == 0:
        return np.zeros(0, dtype=np.int64)
    if len(series) <= k:
        return np.array([series.sum()], dtype=np.int64)
    cumulative = np.concatenate(([0], np.cumsum(series)))
    return cumulative[k:] - cumulative[:-k]


def peak_window(series: np.ndarray, k: int = DEFAULT_BURST_WINDOW) -> Tuple[int, int]:
    """
    Find the best k-second window of a per-second series.

    Args:
        series: Dense per-second values
        k: Window length in seconds

    Returns:
        (best_sum, start_offset); (0, 0) for an empty or all-zero series
    """
    sums = window_sums(series, k)
    if len(sums) == 0:
        return 0, 0
    offset = int(np.argmax(sums))
    return int(sums[offset]), offset


def burst_profile(series: np.ndarray, k: int = DEFAULT_BURST_WINDOW) -> Dict[str, float]:
    """
    Describe how often an actor gets close to their best window.

    Windows at or above 60% of the best one are counted, skipping ahead
    after each so one long push is not counted several times.

    Returns:
        Dict with windows, avg (dps inside counted windows), max (best dps)
        and score
    """
    sums = window_sums(series, k)
    best = int(sums.max()) if len(sums) else 0
    threshold = best * BURST_THRESHOLD

    windows = 0
    total = 0
    index = 0
    while threshold > 0 and index < len(sums):
        if sums[index] >= threshold:
            windows += 1
            total += int(sums[index])
            index += BURST_STRIDE
        else:
            index += 1

    avg = (total / windows) / k if windows else 0.0
    peak = best / k
    return {
        'windows': windows,
        'avg': round(avg, 2),
        'max': round(peak, 2),
        'score': round(peak * 0.7 + avg * 0.2 + windows * 0.1, 2),
    }


def burstiness(series: np.ndarray) -> float:
    """Coefficient of variation over the non-zero seconds (0 when fewer than two)."""
    active = np.asarray(series, dtype=np.float64)
    active = active[active > 0]
    if len(active) < 2:
        return 0.0
    mean = active.mean()
    return round(float(active.std() / mean), 3) if mean else 0.0


def _longest_run(mask: np.ndarray, value: bool) -> int:
    longest = current = 0
    for item in mask:
        if bool(item) == value:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def _action_seconds(aggregate: CombatAggregate) -> Dict[str, set]:
    seconds: Dict[str, set] = defaultdict(set)
    for event in aggregate.store.damage:
        if event.amount > 0:
            seconds[event.src].add(event.t)
    for event in aggregate.store.heals:
        seconds[event.src].add(event.t)
    for event in aggregate.store.utility:
        seconds[event.src].add(event.t)
    return seconds


def activity_profile(aggregate: CombatAggregate, actor: str,
                     seconds: Optional[Iterable[int]] = None) -> Dict[str, Any]:
    """
    Active time of one actor inside the aggregate's span.

    A second is active when the actor dealt damage, healed or used an
    ability in it.
    """
    start, end = aggregate.span()
    if seconds is None:
        seconds = _action_seconds(aggregate).get(actor, set())
    mask = np.zeros(end - start + 1, dtype=bool)
    for second in seconds:
        if start <= second <= end:
            mask[second - start] = True

    active = int(mask.sum())
    positions = np.flatnonzero(mask)
    return {
        'active_seconds': active,
        'uptime_pct': round(100.0 * active / len(mask), 1) if len(mask) else 0.0,
        'longest_active': _longest_run(mask, True),
        'longest_idle': _longest_run(mask, False),
        'first_action': int(start + positions[0]) if len(positions) else None,
        'last_action': int(start + positions[-1]) if len(positions) else None,
    }


def actions_per_minute(aggregate: CombatAggregate) -> Dict[str, float]:
    """
    Ability activations per minute for every actor.

    Repeats of the same ability inside one quarter-second bucket count once.
    Auto attacks and periodic ticks are not activations.
    """
    buckets: Dict[str, set] = defaultdict(set)

    def bucket(t: int) -> float:
        return round(t / APM_BUCKET) * APM_BUCKET

    for event in aggregate.store.damage:
        if event.is_outcome or event.flag == PERIODIC:
            continue
        if event.ability_key in APM_IGNORED_ABILITIES:
            continue
        buckets[event.src].add((bucket(event.t), event.ability_key))
    for event in aggregate.store.heals:
        buckets[event.src].add((bucket(event.t), event.ability_key))
    for event in aggregate.store.utility:
        buckets[event.src].add((bucket(event.t), event.ability_key))

    minutes = max(1, aggregate.length) / 60.0
    return {actor: round(len(actions) / minutes, 1) for actor, actions in buckets.items()}


def decisive_windows(aggregate: CombatAggregate, span: int = DEFAULT_DECISIVE_WINDOW,
                     top: int = 5) -> List[Dict[str, Any]]:
    """
    Damage that landed on each dying actor shortly before the death.

    Args:
        aggregate: Window aggregate (canonical names)
        span: Seconds before the death that count
        top: Number of abilities listed per death

    Returns:
        One dict per death: second, name, killer, window, total damage,
        damage by actor and the top abilities with their share
    """
    results = []
    for death in aggregate.store.deaths:
        window_start = max(aggregate.window_start, death.t - span)
        by_actor: Dict[str, int] = defaultdict(int)
        by_ability: Dict[str, int] = defaultdict(int)

        for event in aggregate.store.damage:
            if event.amount <= 0 or event.dst != death.name:
                continue
            if window_start <= event.t <= death.t:
                by_actor[event.src] += event.amount
                by_ability[event.ability_key] += event.amount

        total = sum(by_actor.values())
        abilities = sorted(by_ability.items(), key=lambda item: (-item[1], item[0]))[:top]
        results.append({
            't': death.t,
            'name': death.name,
            'killer': death.killer,
            'window': {'start': window_start, 'end': death.t},
            'damage': total,
            'by_actor': dict(sorted(by_actor.items(), key=lambda item: (-item[1], item[0]))),
            'top_abilities': [
                {'ability': ability, 'damage': damage, 'share': round(damage / total, 3) if total else 0.0}
                for ability, damage in abilities
            ],
        })
    return results


def offense_breakdown(aggregate: CombatAggregate) -> Dict[str, Dict[str, Any]]:
    """Counts and damage share of each hit quality per attacking actor."""
    qualities = (HIT, CRIT, GLANCE, STRIKETHROUGH, PERIODIC)
    counts: Dict[str, Dict[str, int]] = defaultdict(lambda: dict.fromkeys(qualities, 0))
    damage: Dict[str, Dict[str, int]] = defaultdict(lambda: dict.fromkeys(qualities, 0))

    for event in aggregate.store.damage:
        if event.amount <= 0 or event.flag not in qualities:
            continue
        counts[event.src][event.flag] += 1
        damage[event.src][event.flag] += event.amount

    breakdown = {}
    for actor in counts:
        total = sum(damage[actor].values())
        breakdown[actor] = {
            'counts': counts[actor],
            'damage': damage[actor],
            'share': {
                quality: round(100.0 * value / total, 1) if total else 0.0
                for quality, value in damage[actor].items()
            },
        }
    return breakdown


def class_for_ability(ability_key: str) -> Optional[str]:
    if ability_key in ABILITY_CLASS_MAP:
        return ABILITY_CLASS_MAP[ability_key]
    if ability_key.startswith('burn'):
        return 'Bounty Hunter'
    return None


def infer_classes(aggregate: CombatAggregate) -> Dict[str, Optional[str]]:
    """Guess each actor's profession from the abilities they landed; most hits wins."""
    votes: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for actor, abilities in aggregate.per_ability.items():
        for key, stats in abilities.items():
            profession = class_for_ability(key)
            if profession:
                votes[actor][profession] += stats.hits
    for actor, abilities in aggregate.heal_abilities.items():
        for key, stats in abilities.items():
            profession = class_for_ability(key)
            if profession:
                votes[actor][profession] += stats.hits

    guesses = {}
    for actor in set(aggregate.per_ability) | set(aggregate.heal_abilities):
        tally = votes.get(actor)
        guesses[actor] = max(sorted(tally), key=lambda name: tally[name]) if tally else None
    return guesses


def grade(score: float) -> str:
    for threshold, letter in GRADE_THRESHOLDS:
        if score >= threshold:
            return letter
    return 'F'


def _ratio(value: float, best: float) -> float:
    return min(1.0, value / best) if best > 0 else 0.0


def role_scores(aggregate: CombatAggregate, players: Optional[List[str]] = None,
                burst_window: int = DEFAULT_BURST_WINDOW) -> Dict[str, Dict[str, Any]]:
    """
    Score and grade every player against the rest of the roster.

    Each input (average dps, peak burst dps, APM, uptime) is divided by the
    roster's best value. Survival mixes damage taken (70%) and deaths (30%),
    both relative to the worst player.

    Args:
        aggregate: Window aggregate
        players: Roster; defaults to every non-NPC actor with damage or healing
        burst_window: Seconds of the peak window

    Returns:
        player -> dict of the normalized inputs, score and grade
    """
    if players is None:
        players = roster(aggregate)
    if not players:
        return {}

    seconds = max(1, aggregate.length)
    apm = actions_per_minute(aggregate)
    action_seconds = _action_seconds(aggregate)
    deaths: Dict[str, int] = defaultdict(int)
    for event in aggregate.store.deaths:
        deaths[event.name] += 1

    raw = {}
    for player in players:
        series = aggregate.damage_array(player)
        best, _ = peak_window(series, burst_window)
        start, end = aggregate.span()
        active = len([s for s in action_seconds.get(player, ()) if start <= s <= end])
        raw[player] = {
            'dps': float(series.sum()) / seconds,
            'burst': best / burst_window,
            'apm': apm.get(player, 0.0),
            'uptime': min(1.0, active / seconds),
            'taken': aggregate.taken.get(player, 0),
            'deaths': deaths.get(player, 0),
        }

    best = {key: max(values[key] for values in raw.values()) for key in ('dps', 'burst', 'apm', 'taken', 'deaths')}

    scores = {}
    for player, values in raw.items():
        survival = ((1 - _ratio(values['taken'], best['taken'])) * 0.7
                    + (1 - _ratio(values['deaths'], best['deaths'])) * 0.3)
        parts = {
            'dps': _ratio(values['dps'], best['dps']),
            'burst': _ratio(values['burst'], best['burst']),
            'apm': _ratio(values['apm'], best['apm']),
            'uptime': values['uptime'],
            'survival': survival,
        }
        score = sum(parts[name] * weight for name, weight in SCORE_WEIGHTS.items())
        scores[player] = {
            **{name: round(value, 3) for name, value in parts.items()},
            'score': round(score, 3),
            'grade': grade(score),
        }
    return scores


def utility_summary(aggregate: CombatAggregate) -> Dict[str, Dict[str, int]]:
    """Uses of each utility ability per actor."""
    uses: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for event in aggregate.store.utility:
        uses[event.src][event.ability_key] += 1
    return {actor: dict(abilities) for actor, abilities in uses.items()}


def roster(aggregate: CombatAggregate) -> List[str]:
    """Non-NPC actors that dealt damage or healed, most damage first."""
    return [row['name'] for row in aggregate.rows() if not is_npc(row['name'])]


def build_player_insights(aggregate: CombatAggregate, config: Optional[Dict] = None,
                          players: Optional[List[str]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Combine every per-player analytic into one dictionary per player.

    Args:
        aggregate: Window aggregate, normally from reaggregate()
        config: Configuration dict; `insights.burst_window` and
            `insights.decisive_window` override the defaults
        players: Roster to report; defaults to roster(aggregate)

    Returns:
        player -> {burst, peak, burstiness, activity, apm, offense, class,
        role, utility, decisive}
    """
    settings = _settings(config)
    k = settings['burst_window']
    if players is None:
        players = roster(aggregate)

    apm = actions_per_minute(aggregate)
    action_seconds = _action_seconds(aggregate)
    offense = offense_breakdown(aggregate)
    classes = infer_classes(aggregate)
    roles = role_scores(aggregate, players, k)
    utility = utility_summary(aggregate)
    decisive = decisive_windows(aggregate, settings['decisive_window'])

    insights = {}
    for player in players:
        series = aggregate.damage_array(player)
        best, offset = peak_window(series, k)
        start, _ = aggregate.span()
        insights[player] = {
            'burst': burst_profile(series, k),
            'peak': {'damage': best, 'dps': round(best / k, 2), 'start': start + offset},
            'burstiness': burstiness(series),
            'activity': activity_profile(aggregate, player, action_seconds.get(player, set())),
            'apm': apm.get(player, 0.0),
            'offense': offense.get(player, {}),
            'class': classes.get(player),
            'role': roles.get(player, {}),
            'utility': utility.get(player, {}),
            'decisive': [
                {'t': d['t'], 'name': d['name'], 'damage': d['by_actor'][player]}
                for d in decisive if player in d['by_actor']
            ],
        }

    logger.info(f"Built insights for {len(insights)} player(s)")
    return insights

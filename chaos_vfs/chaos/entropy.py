"""
Entropy Mutator
Probabilistic per-character name corruption scaled by escalation level

All randomness comes from the rng argument so callers (and tests) control
every branch.
"""
import random
from datetime import datetime
from typing import Dict, List, Optional

from chaos_vfs.datashapes import FileEntry, parse_timestamp, to_iso

MAX_DRIFT_PROBABILITY = 0.15
DRIFT_PER_LEVEL = 0.02

# Confusable characters and their homoglyph/leet alternatives
CONFUSABLES: Dict[str, List[str]] = {
    'e': ['ë', 'é', 'è', '3'],
    'a': ['á', 'à', '@', '4'],
    'o': ['ó', '0', 'ö'],
    'i': ['í', '1', 'ï'],
    's': ['$', '5'],
    't': ['†', '7'],
    'l': ['1', '|'],
}


def drift_probability(escalation_level: int) -> float:
    """Per-character drift chance, capped at 15%."""
    return min(MAX_DRIFT_PROBABILITY, max(0, escalation_level) * DRIFT_PER_LEVEL)


def drift(name: str, escalation_level: int, rng: random.Random) -> str:
    """
    Corrupt a name character by character.

    On a hit the character is lower-cased and, when it is confusable, swapped
    for one of its alternatives. Anything else is left as it was.
    """
    probability = drift_probability(escalation_level)
    if probability <= 0 or not name:
        return name

    chars = list(name)
    for i, char in enumerate(chars):
        if rng.random() < probability:
            options = CONFUSABLES.get(char.lower())
            if options:
                chars[i] = rng.choice(options)
    return ''.join(chars)


def passive_entropy_chance(age_days: float, escalation_level: int, passive_growth_rate: float) -> float:
    """Chance that the maintenance worker touches an entry at all."""
    return max(0.0, age_days) * 0.01 * escalation_level * passive_growth_rate


def entry_age_days(entry: FileEntry, now: datetime) -> float:
    created = parse_timestamp(entry.created_at)
    if created is None:
        return 0.0
    return (now - created).total_seconds() / 86400


def apply_drift(entry: FileEntry, escalation_level: int, rng: random.Random,
                now: datetime, name: Optional[str] = None) -> bool:
    """
    Drift an entry's name in place, recording the pre-drift name once.

    name defaults to the entry's current name; renames pass the requested one.
    Returns True when the name actually changed.
    """
    before = entry.name if name is None else name
    after = drift(before, escalation_level, rng)
    entry.name = after
    if after == before:
        return False

    chaos = entry.ensure_chaos()
    chaos.record_original_name(before)
    chaos.entropy_mutations += 1
    chaos.last_mutated = to_iso(now)
    return True

"""
Alternate reality views for list and search responses.

Above escalation 4 a listing may be swapped for a perturbed copy of itself:
reshuffled, thinned out, or padded with phantom entries that were never
stored. Single-entity reads never go through here.
"""
import random
import uuid
from copy import deepcopy
from typing import List, Optional, Tuple

from chaos_vfs.chaos.entropy import drift
from chaos_vfs.datashapes import FileEntry

MODES = ("reshuffle", "filter", "phantom")
FILTER_KEEP_CHANCE = 0.7
MAX_PHANTOMS = 3


def alternate_reality_chance(escalation_level: int, factor: float = 0.1, min_level: int = 5) -> float:
    if escalation_level < min_level:
        return 0.0
    return escalation_level * factor


def make_phantom(source: FileEntry, escalation_level: int, rng: random.Random) -> FileEntry:
    """A drifted, non-existent copy of a real entry."""
    phantom = deepcopy(source)
    phantom.id = f"phantom-{uuid.UUID(int=rng.getrandbits(128), version=4)}"
    phantom.name = drift(source.name, max(escalation_level, 1), rng)
    chaos = phantom.ensure_chaos()
    chaos.is_phantom = True
    chaos.exists = False
    return phantom


def perturb(entries: List[FileEntry], escalation_level: int, rng: random.Random,
            mode: Optional[str] = None) -> Tuple[List[FileEntry], str]:
    """Return (alternate listing, mode used)."""
    mode = mode or rng.choice(MODES)
    view = list(entries)

    if mode == "reshuffle":
        rng.shuffle(view)
    elif mode == "filter":
        view = [entry for entry in view if rng.random() < FILTER_KEEP_CHANCE]
    elif mode == "phantom":
        if view:
            for _ in range(rng.randint(1, MAX_PHANTOMS)):
                source = rng.choice(entries)
                view.insert(rng.randint(0, len(view)), make_phantom(source, escalation_level, rng))
    else:
        raise ValueError(f"Unknown reality mode: {mode}")

    return view, mode


def observe(entries: List[FileEntry], escalation_level: int, rng: random.Random,
            factor: float = 0.1, min_level: int = 5) -> Tuple[List[FileEntry], Optional[str]]:
    """
    Decide which reality a listing is served from.
    Returns (entries, None) for the true listing or (view, mode) for an alternate one.
    """
    chance = alternate_reality_chance(escalation_level, factor, min_level)
    if chance <= 0 or rng.random() >= chance:
        return entries, None
    return perturb(entries, escalation_level, rng)

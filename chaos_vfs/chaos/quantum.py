"""
Quantum State Manager
Generates content variants at write time and collapses them at read time

A file in superposition has a "primary" blob (the untouched original) plus
up to three byte-mutated variants stored as content/{id}-state-{n}. Reads pick
one of them with a weighted draw that leans away from primary as escalation rises.
"""
import random
from typing import List, Optional, Tuple

from chaos_vfs.datashapes import FileEntry, PRIMARY_STATE
from chaos_vfs.error_logging import quantum_logger, ErrorCodes
from chaos_vfs.metadata import MetadataRepository

MAX_STATES = 4
STATE_WEIGHT_PER_LEVEL = 0.08


def state_count_for(escalation_level: int) -> int:
    return min(MAX_STATES, 2 + escalation_level // 3)


def state_ids(count: int) -> List[str]:
    return [PRIMARY_STATE] + [f"state-{i}" for i in range(1, count)]


def create_variant(content: bytes, variant_index: int, escalation_level: int,
                   rng: random.Random) -> bytes:
    """Overwrite floor(len * divergence * 0.1) random positions with random bytes."""
    divergence = (variant_index / 4) * (escalation_level / 10)
    mutation_count = int(len(content) * divergence * 0.1)

    variant = bytearray(content)
    for _ in range(mutation_count):
        pos = rng.randrange(len(variant))
        variant[pos] = rng.randrange(256)
    return bytes(variant)


def generate_variants(content: bytes, escalation_level: int, rng: random.Random) -> List[bytes]:
    """Variant blobs for state-1 .. state-(N-1); primary is the content itself."""
    count = state_count_for(escalation_level)
    return [create_variant(content, i, escalation_level, rng) for i in range(1, count)]


def state_weights(states: List[str], escalation_level: int) -> List[Tuple[str, float]]:
    """Primary weighs 1 - L*0.08, every other state L*0.08; negatives clamp to 0."""
    other = max(0.0, escalation_level * STATE_WEIGHT_PER_LEVEL)
    primary = max(0.0, 1.0 - escalation_level * STATE_WEIGHT_PER_LEVEL)
    return [(state, primary if state == PRIMARY_STATE else other) for state in states]


def select_state(states: List[str], escalation_level: int, rng: random.Random) -> str:
    """Weighted random collapse of a superposition to one state id."""
    if not states:
        return PRIMARY_STATE

    weighted = state_weights(states, escalation_level)
    total = sum(weight for _, weight in weighted)
    if total <= 0:
        return PRIMARY_STATE

    remainder = rng.random() * total
    for state, weight in weighted:
        remainder -= weight
        if remainder <= 0:
            return state
    return weighted[-1][0]


class QuantumStateManager:
    """Stores and serves quantum variants through the metadata repository."""

    def __init__(self, repository: MetadataRepository, rng: random.Random):
        self.repository = repository
        self.rng = rng

    def split(self, entry: FileEntry, content: bytes, escalation_level: int) -> List[str]:
        """
        Write variant blobs for an entry and mark it as in superposition.
        Metadata is updated in memory only; the caller persists the entry.
        """
        variants = generate_variants(content, escalation_level, self.rng)
        states = state_ids(len(variants) + 1)
        for state_id, blob in zip(states[1:], variants):
            self.repository.put_content(entry.id, blob, state_id=state_id,
                                        content_type=entry.mime_type)

        chaos = entry.ensure_chaos()
        chaos.quantum_states = states
        chaos.state_count = len(states)
        chaos.superposition = True

        quantum_logger.log_info(ErrorCodes.QUANTUM_STATES_CREATED,
                                f"{entry.id} split into {len(states)} states")
        return states

    def collapse(self, entry: FileEntry, escalation_level: int) -> Tuple[Optional[bytes], str]:
        """
        Pick a state and return (content, state_id).

        A missing variant blob falls back to the primary content.
        """
        state = select_state(entry.quantum_states, escalation_level, self.rng)
        if state != PRIMARY_STATE:
            content = self.repository.get_content(entry.id, state)
            if content is not None:
                return content, state
            quantum_logger.log_warning(ErrorCodes.QUANTUM_VARIANT_MISSING,
                                       f"Variant {state} of {entry.id} is missing, serving primary")
        return self.repository.get_content(entry.id), PRIMARY_STATE

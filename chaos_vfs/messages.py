"""
Thematic message pools.
Used to dress up responses and errors; never changes status semantics.
"""
import random
from typing import Optional

ENTROPY_MESSAGES = [
    "Your file is slowly forgetting what it used to be.",
    "Entropy.dll is working as intended.",
    "This document has degraded {n} times. It remembers being whole.",
    "Decay detected: {filename} is becoming something else.",
    "The file has forgotten its purpose. Soon, it will forget its name.",
    "Bit rot has set in. The file is aging gracefully into nonsense.",
]

QUANTUM_MESSAGES = [
    "This file exists in all states until you observe it.",
    "The file changed when you looked at it. Observation has consequences.",
    "Multiple realities detected. You're seeing version {n}.",
    "Wave function collapsed. Your document is now a particle.",
    "Search query collapsed the probability cloud. Results: ambiguous.",
]

RECURRENCE_MESSAGES = [
    "The deleted returns. It always returns.",
    "This file has been deleted {n} times. It persists.",
    "Error 418: I'm a file that refuses to stay dead.",
    "Resurrection complete. The file has learned nothing.",
    "The wheel turns. Your downloads repeat. Sisyphus nods knowingly.",
]

ABSURD_LABOR_MESSAGES = [
    "Upload successful. The file is nowhere to be found.",
    "One must imagine the file uploader happy.",
    "Rename failed: The file you seek cannot be renamed, only pursued.",
    "Progress: 99.9999%. Remaining time: ∞",
]

POOLS = {
    'entropy': ENTROPY_MESSAGES,
    'quantum': QUANTUM_MESSAGES,
    'recurrence': RECURRENCE_MESSAGES,
    'absurd': ABSURD_LABOR_MESSAGES,
}


def pick(pool: str, rng: random.Random, n: Optional[int] = None, filename: Optional[str] = None) -> str:
    """Pick a message from a pool and fill {n} / {filename} placeholders."""
    template = rng.choice(POOLS[pool])
    return template.replace('{n}', str(n if n is not None else '?')) \
                   .replace('{filename}', filename or 'this file')

"""
Chaos VFS - a hierarchical file store layered over a flat object store,
with escalation-driven entropy, quantum states and a respawning graveyard.
"""

__version__ = "1.0.0"

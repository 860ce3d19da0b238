from chaos_vfs.chaos.entropy import drift, drift_probability, apply_drift
from chaos_vfs.chaos.quantum import QuantumStateManager, select_state, generate_variants
from chaos_vfs.chaos.graveyard import (
    GraveyardManager, RespawnPolicy, FixedDelayRespawnPolicy, EscalationScaledRespawnPolicy
)

__all__ = [
    'drift', 'drift_probability', 'apply_drift',
    'QuantumStateManager', 'select_state', 'generate_variants',
    'GraveyardManager', 'RespawnPolicy', 'FixedDelayRespawnPolicy', 'EscalationScaledRespawnPolicy',
]

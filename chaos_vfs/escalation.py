"""
Escalation Controller
Persists the interaction counter and derives the escalation level from it

Formula: level = min(10, floor(interactions / 10))
Every 10 interactions = +1 escalation level (caps at level 10)

The record is re-read on every call; nothing is cached between requests so a
level change is visible to every caller at once.
"""
import json
from typing import Callable, Optional
from datetime import datetime

from chaos_vfs.datashapes import EscalationRecord, to_iso, utc_now
from chaos_vfs.errors import NotFound, StorageFailure, ValidationError
from chaos_vfs.error_logging import escalation_logger, ErrorCodes
from chaos_vfs.metadata import ESCALATION_KEY, decode_json
from chaos_vfs.storage import ObjectStore


class EscalationController:
    """Reads and writes the singleton escalation record."""

    def __init__(self, store: ObjectStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or utc_now

    def get_record(self) -> EscalationRecord:
        raw = self.store.get(ESCALATION_KEY)
        if raw is None:
            return EscalationRecord()
        return EscalationRecord.from_dict(decode_json(raw, ESCALATION_KEY))

    def get_level(self) -> int:
        """Current level; 0 when no record exists or it cannot be read."""
        try:
            return self.get_record().level
        except (NotFound, StorageFailure) as e:
            escalation_logger.log_error(ErrorCodes.ESCAL_READ_FAILED,
                                        f"Could not read escalation record, assuming level 0: {e}")
            return 0

    def record_interaction(self, total_interactions: int) -> EscalationRecord:
        """Persist a new interaction total and the level derived from it."""
        if not isinstance(total_interactions, int) or isinstance(total_interactions, bool) \
                or total_interactions < 0:
            raise ValidationError("interactions must be a non-negative integer")

        record = EscalationRecord(
            level=EscalationRecord.level_for(total_interactions),
            interactions=total_interactions,
            last_updated=to_iso(self.clock())
        )
        self.store.put(ESCALATION_KEY, json.dumps(record.to_dict()).encode('utf-8'),
                       content_type='application/json')
        escalation_logger.log_info(ErrorCodes.ESCAL_UPDATED,
                                   f"Escalation now level {record.level} ({record.interactions} interactions)")
        return record

    def sync(self, interactions: int) -> EscalationRecord:
        """Accept a client-reported total; the counter never goes backwards."""
        if not isinstance(interactions, int) or isinstance(interactions, bool) or interactions < 0:
            raise ValidationError("interactions must be a non-negative integer")
        current = self.get_record()
        return self.record_interaction(max(current.interactions, interactions))

    def increment(self, count: int = 1) -> EscalationRecord:
        """
        Add interactions to the persisted counter.
        Read-modify-write without locking; concurrent increments are last-write-wins.
        """
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise ValidationError("increment must be a non-negative integer")
        current = self.get_record()
        return self.record_interaction(current.interactions + count)

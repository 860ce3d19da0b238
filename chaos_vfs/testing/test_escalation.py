"""
Escalation Controller Tests

Level formula: min(10, floor(interactions / 10))
"""

import pytest

from chaos_vfs.datashapes import EscalationRecord
from chaos_vfs.errors import ValidationError
from chaos_vfs.metadata import ESCALATION_KEY


class TestLevelFormula:

    @pytest.mark.parametrize("interactions,level", [
        (0, 0), (9, 0), (10, 1), (55, 5), (99, 9), (100, 10), (5000, 10),
    ])
    def test_level_for(self, interactions, level):
        assert EscalationRecord.level_for(interactions) == level


class TestEscalationController:

    def test_no_record_means_level_zero(self, escalation):
        record = escalation.get_record()
        assert (record.level, record.interactions, record.last_updated) == (0, 0, None)

    def test_record_interaction_persists_level(self, escalation, clock):
        record = escalation.record_interaction(42)
        assert record.level == 4
        assert escalation.get_level() == 4
        assert escalation.get_record().last_updated == clock().isoformat()

    def test_increment(self, escalation):
        escalation.record_interaction(9)
        assert escalation.increment().level == 1
        assert escalation.increment(5).interactions == 15

    def test_sync_never_lowers_counter(self, escalation):
        escalation.record_interaction(50)
        assert escalation.sync(20).interactions == 50
        assert escalation.sync(70).interactions == 70

    @pytest.mark.parametrize("bad", [-1, "12", 3.5, True, None])
    def test_invalid_totals_rejected(self, escalation, bad):
        with pytest.raises(ValidationError):
            escalation.record_interaction(bad)

    def test_corrupt_record_reads_as_level_zero(self, escalation, store):
        """EDGE: a broken record never blocks a request."""
        store.put(ESCALATION_KEY, b"not json")
        assert escalation.get_level() == 0

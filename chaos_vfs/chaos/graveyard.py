"""
Graveyard / Respawn Manager

State machine:
    Active --delete--> Ghost(deleted_at, respawn_at)
    Ghost  --respawn_at elapsed--> Active (resurrection_count + 1)
    Ghost  --deleted_at older than the purge window--> Purged (terminal)

Ghost records live under meta/graveyard/{id}.json. Burying removes the live
metadata copies but keeps the content blobs so a resurrection restores the
full file; only a purge removes content.

A ghost past the purge window is never a resurrection candidate, so purge and
resurrection cannot both act on the same ghost.
"""
import json
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from chaos_vfs.datashapes import (
    FileEntry, GraveyardGhost, MAX_ESCALATION_LEVEL, parse_timestamp, to_iso, utc_now
)
from chaos_vfs.errors import NotFound, StorageFailure
from chaos_vfs.error_logging import graveyard_logger, ErrorCodes
from chaos_vfs.metadata import GRAVEYARD_PREFIX, MetadataRepository, decode_json, id_from_key


def ghost_key(entry_id: str) -> str:
    return f"{GRAVEYARD_PREFIX}{entry_id}.json"


# =============================================================================
# RESPAWN POLICIES
# =============================================================================

class RespawnPolicy:
    """Decides when a freshly buried ghost comes back."""

    def respawn_at(self, deleted_at: datetime, escalation_level: int, entry: FileEntry) -> datetime:
        raise NotImplementedError


class FixedDelayRespawnPolicy(RespawnPolicy):
    """Every ghost returns base_delay seconds after deletion."""

    def __init__(self, base_delay: int = 300):
        self.base_delay = base_delay

    def respawn_at(self, deleted_at, escalation_level, entry):
        return deleted_at + timedelta(seconds=self.base_delay)


class EscalationScaledRespawnPolicy(RespawnPolicy):
    """
    Ghosts return faster as escalation rises:
    delay = base_delay / (1 + level * scale), never below min_delay.
    """

    def __init__(self, base_delay: int = 300, scale: float = 0.5, min_delay: int = 30):
        self.base_delay = base_delay
        self.scale = scale
        self.min_delay = min_delay

    def respawn_at(self, deleted_at, escalation_level, entry):
        level = min(MAX_ESCALATION_LEVEL, max(0, escalation_level))
        delay = max(self.min_delay, self.base_delay / (1 + level * self.scale))
        return deleted_at + timedelta(seconds=delay)


# =============================================================================
# MANAGER
# =============================================================================

class GraveyardManager:
    """Buries, resurrects and purges ghosts."""

    def __init__(self, repository: MetadataRepository, policy: Optional[RespawnPolicy] = None,
                 clock: Optional[Callable[[], datetime]] = None, purge_after_hours: int = 24):
        self.repository = repository
        self.store = repository.store
        self.policy = policy or FixedDelayRespawnPolicy()
        self.clock = clock or utc_now
        self.purge_after = timedelta(hours=purge_after_hours)

    def bury(self, entry: FileEntry, escalation_level: int) -> GraveyardGhost:
        """
        Turn a live entry into a ghost.
        The ghost is written before the live copies are removed, so a failure
        in between leaves the entry live rather than lost.
        """
        now = self.clock()
        ghost = GraveyardGhost(
            entry=entry,
            deleted_at=to_iso(now),
            respawn_at=to_iso(self.policy.respawn_at(now, escalation_level, entry))
        )
        self.store.put(ghost_key(entry.id), json.dumps(ghost.to_dict()).encode('utf-8'),
                       content_type='application/json')
        self.repository.remove_metadata(entry)
        graveyard_logger.log_info(ErrorCodes.GRAVE_BURIED,
                                  f"Buried {entry.name} ({entry.id}) until {ghost.respawn_at}")
        return ghost

    def get_ghost(self, entry_id: str) -> GraveyardGhost:
        key = ghost_key(entry_id)
        raw = self.store.get(key)
        if raw is None:
            raise NotFound(f"No ghost with id {entry_id}", key=key)
        return GraveyardGhost.from_dict(decode_json(raw, key))

    def ghost_ids(self, limit: Optional[int] = None) -> List[str]:
        return [id_from_key(key) for key in self.store.list(GRAVEYARD_PREFIX, limit=limit)]

    def list_ghosts(self, limit: Optional[int] = None) -> List[GraveyardGhost]:
        ghosts = []
        for entry_id in self.ghost_ids(limit):
            try:
                ghosts.append(self.get_ghost(entry_id))
            except (NotFound, StorageFailure) as e:
                graveyard_logger.log_error(ErrorCodes.GRAVE_ITEM_FAILED,
                                           f"Skipping unreadable ghost {entry_id}: {e}")
        return ghosts

    def is_expired(self, ghost: GraveyardGhost, now: datetime) -> bool:
        return parse_timestamp(ghost.deleted_at) < now - self.purge_after

    def is_due(self, ghost: GraveyardGhost, now: datetime) -> bool:
        return parse_timestamp(ghost.respawn_at) <= now

    def resurrect(self, ghost: GraveyardGhost) -> FileEntry:
        """Restore the entry to its canonical and index keys, then drop the ghost."""
        now = self.clock()
        entry = ghost.entry
        chaos = entry.ensure_chaos()
        chaos.resurrection_count += 1
        chaos.last_resurrected = to_iso(now)

        self.repository.put(entry)
        self.store.delete(ghost_key(entry.id))
        graveyard_logger.log_info(
            ErrorCodes.GRAVE_RESURRECTED,
            f"Respawned {entry.name} (resurrection #{chaos.resurrection_count})"
        )
        return entry

    def purge(self, ghost: GraveyardGhost):
        """Permanently remove a ghost and its content blobs."""
        self.repository.delete_content(ghost.entry)
        self.store.delete(ghost_key(ghost.id))
        graveyard_logger.log_info(ErrorCodes.GRAVE_PURGED, f"Purged {ghost.entry.name} ({ghost.id})")

    def process_resurrections(self, limit: Optional[int] = None) -> List[FileEntry]:
        """Resurrect every due ghost that is not past the purge window."""
        now = self.clock()
        restored = []
        for entry_id in self.ghost_ids(limit):
            try:
                ghost = self.get_ghost(entry_id)
                if self.is_expired(ghost, now) or not self.is_due(ghost, now):
                    continue
                restored.append(self.resurrect(ghost))
            except Exception as e:
                graveyard_logger.log_error(ErrorCodes.GRAVE_ITEM_FAILED,
                                           f"Error respawning {entry_id}: {e}", {"key": ghost_key(entry_id)})

        if restored:
            graveyard_logger.log_info(ErrorCodes.GRAVE_RESURRECTED,
                                      f"Respawned {len(restored)} files from graveyard")
        return restored

    def purge_expired(self, limit: Optional[int] = None) -> List[str]:
        """Purge every ghost deleted before the cutoff."""
        now = self.clock()
        purged = []
        for entry_id in self.ghost_ids(limit):
            try:
                ghost = self.get_ghost(entry_id)
                if self.is_expired(ghost, now):
                    self.purge(ghost)
                    purged.append(entry_id)
            except Exception as e:
                graveyard_logger.log_error(ErrorCodes.GRAVE_ITEM_FAILED,
                                           f"Error cleaning up {entry_id}: {e}", {"key": ghost_key(entry_id)})

        if purged:
            graveyard_logger.log_info(ErrorCodes.GRAVE_PURGED,
                                      f"Cleaned up {len(purged)} old graveyard entries")
        return purged

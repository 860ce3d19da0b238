#!/usr/bin/env python3
"""
datashapes.py - Centralized Data Shape Definitions

All records persisted by the VFS live here: file/folder entries, their chaos
bookkeeping, graveyard ghosts and the escalation singleton.
No storage logic - just what the data looks like and how it (de)serializes.

Other modules import from here to ensure consistent structures:
    from chaos_vfs.datashapes import FileEntry, GraveyardGhost, EscalationRecord
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any

from chaos_vfs.errors import ParseFailure


MAX_ESCALATION_LEVEL = 10
INTERACTIONS_PER_LEVEL = 10
PRIMARY_STATE = "primary"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are assumed to be UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# ENUMS
# =============================================================================

class EntryType(Enum):
    """What kind of node a FileEntry is."""
    FILE = "file"
    FOLDER = "folder"


# =============================================================================
# CHAOS BOOKKEEPING
# =============================================================================

@dataclass
class ChaosMetadata:
    """
    Optional bag of chaos state carried by an entry.

    original_name is captured the first time a name drifts and is never
    overwritten afterwards.
    """
    # === Entropy ===
    original_name: Optional[str] = None
    entropy_mutations: int = 0
    last_mutated: Optional[str] = None

    # === Quantum ===
    quantum_states: List[str] = field(default_factory=list)  # first is always "primary"
    state_count: int = 0
    superposition: bool = False

    # === Recurrence ===
    resurrection_count: int = 0
    last_resurrected: Optional[str] = None

    # === Phantoms (never persisted) ===
    is_phantom: bool = False
    exists: bool = True

    def record_original_name(self, name: str) -> None:
        if self.original_name is None:
            self.original_name = name

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChaosMetadata':
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        meta = cls(**known)
        meta.quantum_states = list(meta.quantum_states or [])
        return meta


# =============================================================================
# ENTRIES
# =============================================================================

@dataclass
class FileEntry:
    """A file or folder record, stored canonically and under its parent index."""
    id: str
    name: str
    type: EntryType
    parent_id: Optional[str] = None           # None = root
    size: int = 0                             # 0 for folders
    mime_type: Optional[str] = None           # files only
    created_at: str = field(default_factory=lambda: to_iso(utc_now()))
    modified_at: str = field(default_factory=lambda: to_iso(utc_now()))
    chaos_metadata: Optional[ChaosMetadata] = None

    @property
    def is_folder(self) -> bool:
        return self.type == EntryType.FOLDER

    @property
    def quantum_states(self) -> List[str]:
        if self.chaos_metadata and self.chaos_metadata.quantum_states:
            return list(self.chaos_metadata.quantum_states)
        return [PRIMARY_STATE]

    def ensure_chaos(self) -> ChaosMetadata:
        """Return chaos_metadata, creating an empty bag on first use."""
        if self.chaos_metadata is None:
            self.chaos_metadata = ChaosMetadata()
        return self.chaos_metadata

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'parent_id': self.parent_id,
            'size': self.size,
            'created_at': self.created_at,
            'modified_at': self.modified_at,
        }
        if self.mime_type is not None:
            data['mime_type'] = self.mime_type
        if self.chaos_metadata is not None:
            data['chaos_metadata'] = self.chaos_metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileEntry':
        try:
            chaos = data.get('chaos_metadata')
            return cls(
                id=data['id'],
                name=data['name'],
                type=EntryType(data['type']),
                parent_id=data.get('parent_id'),
                size=int(data.get('size') or 0),
                mime_type=data.get('mime_type'),
                created_at=data['created_at'],
                modified_at=data.get('modified_at') or data['created_at'],
                chaos_metadata=ChaosMetadata.from_dict(chaos) if chaos else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseFailure(f"Malformed file entry: {e}") from e


@dataclass
class GraveyardGhost:
    """
    A soft-deleted entry awaiting resurrection or purge.
    Lives only under meta/graveyard/.
    """
    entry: FileEntry
    deleted_at: str
    respawn_at: str

    @property
    def id(self) -> str:
        return self.entry.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data['deleted_at'] = self.deleted_at
        data['respawn_at'] = self.respawn_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GraveyardGhost':
        try:
            return cls(
                entry=FileEntry.from_dict(data),
                deleted_at=data['deleted_at'],
                respawn_at=data['respawn_at'],
            )
        except KeyError as e:
            raise ParseFailure(f"Malformed graveyard record: missing {e}") from e


@dataclass
class EscalationRecord:
    """Singleton counter behind every chaos probability."""
    level: int = 0
    interactions: int = 0
    last_updated: Optional[str] = None

    @staticmethod
    def level_for(interactions: int) -> int:
        return min(MAX_ESCALATION_LEVEL, max(0, interactions) // INTERACTIONS_PER_LEVEL)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EscalationRecord':
        try:
            return cls(
                level=int(data.get('level') or 0),
                interactions=int(data.get('interactions') or 0),
                last_updated=data.get('last_updated'),
            )
        except (TypeError, ValueError) as e:
            raise ParseFailure(f"Malformed escalation record: {e}") from e

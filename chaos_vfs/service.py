#!/usr/bin/env python3
"""
Chaos VFS Service
Composes the repository, escalation controller and chaos managers per operation

Every operation reads the escalation level fresh, does its work against the
object store, applies whatever chaos the level calls for, and finally counts
the interaction (upload, download, rename, delete and folder navigation each
count once). The level a request acts on is the one read before its own
interaction is counted.
"""
import random
import re
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from chaos_vfs import messages
from chaos_vfs.chaos import reality
from chaos_vfs.chaos.entropy import apply_drift
from chaos_vfs.chaos.graveyard import FixedDelayRespawnPolicy, GraveyardManager, RespawnPolicy
from chaos_vfs.chaos.quantum import QuantumStateManager
from chaos_vfs.config import ChaosConfig
from chaos_vfs.datashapes import EntryType, FileEntry, PRIMARY_STATE, to_iso, utc_now
from chaos_vfs.errors import NotFound, StorageFailure, ValidationError
from chaos_vfs.escalation import EscalationController
from chaos_vfs.error_logging import api_logger, entropy_logger, ErrorCodes
from chaos_vfs.metadata import MetadataRepository
from chaos_vfs.storage import ObjectStore
from chaos_vfs.worker import ChaosWorker

_UNSET = object()

CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')


def check_name(name, label: str) -> str:
    """Names must be non-blank and free of control characters"""
    if not name or not str(name).strip():
        raise ValidationError(f"{label} required")
    name = str(name)
    if CONTROL_CHARS.search(name):
        raise ValidationError(f"{label} must not contain control characters")
    return name


class VFSService:
    """
    Request-facing orchestrator for the virtual file system.
    Holds collaborators only; all state lives in the object store.
    """

    def __init__(self, store: ObjectStore, chaos_config: Optional[ChaosConfig] = None,
                 rng: Optional[random.Random] = None, clock: Optional[Callable[[], datetime]] = None,
                 respawn_policy: Optional[RespawnPolicy] = None, concurrent_worker: bool = True):
        self.store = store
        self.config = chaos_config or ChaosConfig()
        self.rng = rng or random.Random()
        self.message_rng = random.Random()
        self.clock = clock or utc_now

        self.repository = MetadataRepository(store)
        self.escalation = EscalationController(store, clock=self.clock)
        self.quantum = QuantumStateManager(self.repository, self.rng)
        self.graveyard = GraveyardManager(
            self.repository,
            policy=respawn_policy or FixedDelayRespawnPolicy(self.config.respawn_delay_base),
            clock=self.clock,
            purge_after_hours=self.config.purge_after_hours
        )
        self.worker = ChaosWorker(
            self.repository, self.escalation, self.graveyard, self.quantum,
            chaos_config=self.config, rng=self.rng, clock=self.clock, concurrent=concurrent_worker
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _count_interaction(self):
        """Count one client interaction; a failed count never fails the request."""
        try:
            self.escalation.increment()
        except StorageFailure as e:
            api_logger.log_error(ErrorCodes.ESCAL_COUNT_FAILED, f"Could not count interaction: {e}")

    def _require_folder(self, parent_id: Optional[str]):
        if not parent_id:
            return
        parent = self.repository.get(parent_id)
        if not parent.is_folder:
            raise ValidationError(f"Parent {parent_id} is not a folder")

    def _check_no_cycle(self, entry_id: str, new_parent_id: Optional[str]):
        seen = set()
        current = new_parent_id
        while current:
            if current == entry_id:
                raise ValidationError("A folder cannot be moved inside itself")
            if current in seen:
                break
            seen.add(current)
            current = self.repository.get(current).parent_id

    def _observe(self, entries: List[FileEntry], level: int) -> Tuple[List[FileEntry], Optional[str]]:
        return reality.observe(entries, level, self.rng,
                               factor=self.config.alternate_reality_factor,
                               min_level=self.config.alternate_reality_min_level)

    def _reality_payload(self, mode: Optional[str], seen: int) -> Dict[str, Any]:
        if mode is None:
            return {'reality': 'primary'}
        return {
            'reality': 'alternate',
            'reality_mode': mode,
            'message': messages.pick('quantum', self.message_rng, n=seen),
        }

    # =========================================================================
    # FILES
    # =========================================================================

    def list_files(self, parent_id: Optional[str] = None) -> Dict[str, Any]:
        """
        List a folder (or root). Folder names may drift on sight and the whole
        listing may come from an alternate reality.
        """
        level = self.escalation.get_level()
        entries = self.repository.list_by_parent(parent_id or None)

        if level > 0:
            self._drift_folders(entries, level)

        view, mode = self._observe(entries, level)
        self._count_interaction()

        result = {'entries': [entry.to_dict() for entry in view], 'escalation_level': level}
        result.update(self._reality_payload(mode, len(view)))
        return result

    def _drift_folders(self, entries: List[FileEntry], level: int):
        chance = level * self.config.listing_folder_drift_factor
        now = self.clock()
        for entry in entries:
            if not entry.is_folder or self.rng.random() >= chance:
                continue
            if not apply_drift(entry, level, self.rng, now):
                continue
            try:
                self.repository.put(entry)
                entropy_logger.log_info(ErrorCodes.ENTROPY_DRIFTED, f"Folder {entry.id} drifted to {entry.name}")
            except StorageFailure as e:
                entropy_logger.log_error(ErrorCodes.META_INDEX_WRITE_FAILED,
                                         f"Could not persist drift of folder {entry.id}: {e}")

    def get_file(self, entry_id: str) -> FileEntry:
        return self.repository.get(entry_id)

    def upload_file(self, filename: str, content: bytes, mime_type: Optional[str] = None,
                    parent_id: Optional[str] = None) -> FileEntry:
        """Store a new file; from quantum_min_level up it is born in superposition."""
        filename = check_name(filename, "File name")
        if content is None:
            raise ValidationError("No file content provided")
        parent_id = parent_id or None
        self._require_folder(parent_id)

        level = self.escalation.get_level()
        now = to_iso(self.clock())
        entry = FileEntry(
            id=str(uuid.uuid4()),
            name=filename,
            type=EntryType.FILE,
            parent_id=parent_id,
            size=len(content),
            mime_type=mime_type,
            created_at=now,
            modified_at=now,
        )

        self.repository.put_content(entry.id, content, content_type=mime_type)
        try:
            if level >= self.config.quantum_min_level:
                self.quantum.split(entry, content, level)
            self.repository.put(entry)
        except StorageFailure:
            self._discard_content(entry)
            raise

        api_logger.log_info(ErrorCodes.API_FILE_STORED, f"Stored {entry.name} ({entry.size} bytes) as {entry.id}")
        self._count_interaction()
        return entry

    def _discard_content(self, entry: FileEntry):
        try:
            self.repository.delete_content(entry)
        except StorageFailure as e:
            api_logger.log_error(ErrorCodes.API_REQUEST_FAILED,
                                 f"Could not clean up content of failed upload {entry.id}: {e}")

    def rename_file(self, entry_id: str, name: Optional[str], parent_id=_UNSET) -> Dict[str, Any]:
        """
        Rename (and optionally move) an entry. Above level 0 the requested
        name drifts before it is stored.
        """
        name = check_name(name, "New name")

        entry = self.repository.get(entry_id)
        level = self.escalation.get_level()
        now = self.clock()

        if parent_id is not _UNSET:
            parent_id = parent_id or None
            self._require_folder(parent_id)
            self._check_no_cycle(entry.id, parent_id)
            entry.parent_id = parent_id

        drifted = False
        if level > 0:
            drifted = apply_drift(entry, level, self.rng, now, name=name)
        else:
            entry.name = name
        entry.modified_at = to_iso(now)

        self.repository.put(entry)
        self._count_interaction()

        result = {'entry': entry.to_dict(), 'drifted': drifted}
        if drifted:
            result['message'] = messages.pick('entropy', self.message_rng,
                                              n=entry.chaos_metadata.entropy_mutations,
                                              filename=name)
        return result

    def delete_file(self, entry_id: str) -> Dict[str, Any]:
        entry = self.repository.get(entry_id)
        return self._delete_tree(entry)

    def download(self, entry_id: str) -> Dict[str, Any]:
        """Fetch content, collapsing a superposition to one state."""
        entry = self.repository.get(entry_id)
        if entry.is_folder:
            raise NotFound("File not found")

        level = self.escalation.get_level()
        states = entry.quantum_states
        if len(states) > 1:
            content, state = self.quantum.collapse(entry, level)
        else:
            content, state = self.repository.get_content(entry.id), PRIMARY_STATE

        if content is None:
            raise NotFound("File content not found")

        self._count_interaction()
        return {
            'entry': entry,
            'content': content,
            'state': state,
            'superposition': len(states) > 1,
        }

    def search(self, query: Optional[str]) -> Dict[str, Any]:
        """Case-insensitive substring search over every live entry name."""
        if not query or not str(query).strip():
            raise ValidationError("Search query required")
        needle = str(query).lower()

        level = self.escalation.get_level()
        matches = [entry for entry in self.repository.iter_entries()
                   if needle in entry.name.lower()]
        view, mode = self._observe(matches, level)

        result = {'results': [entry.to_dict() for entry in view], 'escalation_level': level}
        result.update(self._reality_payload(mode, len(view)))
        return result

    # =========================================================================
    # FOLDERS
    # =========================================================================

    def create_folder(self, name: Optional[str], parent_id: Optional[str] = None) -> FileEntry:
        name = check_name(name, "Folder name")
        parent_id = parent_id or None
        self._require_folder(parent_id)

        now = to_iso(self.clock())
        folder = FileEntry(
            id=str(uuid.uuid4()),
            name=name,
            type=EntryType.FOLDER,
            parent_id=parent_id,
            size=0,
            created_at=now,
            modified_at=now,
        )
        self.repository.put(folder)
        return folder

    def delete_folder(self, folder_id: str) -> Dict[str, Any]:
        folder = self.repository.get(folder_id)
        if not folder.is_folder:
            raise ValidationError(f"{folder_id} is not a folder")
        return self._delete_tree(folder)

    def _collect_tree(self, root: FileEntry) -> List[FileEntry]:
        """Root plus every descendant, gathered with an explicit stack."""
        collected = []
        seen = set()
        stack = [root]
        while stack:
            node = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            collected.append(node)
            if node.is_folder:
                stack.extend(self.repository.list_by_parent(node.id))
        return collected

    def _delete_tree(self, root: FileEntry) -> Dict[str, Any]:
        """
        Delete an entry and (for folders) all descendants.
        Level 0 deletes for good; above it every node becomes a ghost.
        Descendants go first so a failure leaves the root in place.
        """
        level = self.escalation.get_level()
        nodes = self._collect_tree(root)
        buried = []
        purged = []
        failed = []

        for node in reversed(nodes):
            try:
                if level > 0:
                    ghost = self.graveyard.bury(node, level)
                    buried.append({'id': node.id, 'respawn_at': ghost.respawn_at})
                else:
                    self.repository.remove_metadata(node)
                    self.repository.delete_content(node)
                    purged.append(node.id)
            except StorageFailure as e:
                if node.id == root.id:
                    raise
                failed.append(node.id)
                api_logger.log_error(ErrorCodes.API_DELETE_PARTIAL,
                                     f"Could not delete descendant {node.id}: {e}")

        self._count_interaction()
        return {
            'success': True,
            'id': root.id,
            'graveyard': buried,
            'purged': purged,
            'failed': failed,
        }

    def tree(self) -> List[Dict[str, Any]]:
        """Full hierarchy from root, built with a worklist."""
        roots: List[Dict[str, Any]] = []
        seen = set()
        stack = [(None, roots)]
        while stack:
            parent_id, siblings = stack.pop()
            for entry in self.repository.list_by_parent(parent_id):
                if entry.id in seen:
                    continue
                seen.add(entry.id)
                node = entry.to_dict()
                if entry.is_folder:
                    node['children'] = []
                    stack.append((entry.id, node['children']))
                siblings.append(node)
        return roots

    # =========================================================================
    # ESCALATION / CHAOS
    # =========================================================================

    def get_escalation(self) -> Dict[str, Any]:
        return self.escalation.get_record().to_dict()

    def update_escalation(self, interactions=None, increment=None) -> Dict[str, Any]:
        if interactions is None and increment is None:
            raise ValidationError("interactions or increment required")
        if interactions is not None:
            record = self.escalation.sync(interactions)
        else:
            record = self.escalation.increment(increment)
        return record.to_dict()

    def run_worker(self) -> Dict[str, Any]:
        return self.worker.run_cycle()

    def respawn_check(self) -> Dict[str, Any]:
        restored = self.graveyard.process_resurrections(self.config.pass_limit)
        result = {'count': len(restored), 'respawned': [entry.id for entry in restored]}
        if restored:
            result['message'] = messages.pick(
                'recurrence', self.message_rng,
                n=max(entry.chaos_metadata.resurrection_count for entry in restored),
                filename=restored[0].name
            )
        return result

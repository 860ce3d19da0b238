#!/usr/bin/env python3
"""
Metadata Repository
Reads and writes FileEntry records and their parent/root index copies

Storage layout (object store keys):
    meta/{id}.json                  canonical record (source of truth)
    meta/parent_{parentId}/{id}.json  child index under a folder
    meta/root/{id}.json             child index under root
    content/{id}                    primary content blob
    content/{id}-{stateId}          quantum variant blobs

The canonical record is authoritative. Index copies only decide listing
membership; every index hit is resolved back through the canonical record and
dropped if the canonical parent no longer matches. A failed index write rolls
the canonical record back, so a put is reported failed as a whole. A crash
between the two writes can still leave a canonical record without its index
copy; rebuild_indexes() repairs that.
"""
import json
from typing import Dict, Iterator, List, Optional

from chaos_vfs.datashapes import FileEntry, PRIMARY_STATE
from chaos_vfs.errors import NotFound, ParseFailure, StorageFailure
from chaos_vfs.error_logging import metadata_logger, ErrorCodes
from chaos_vfs.storage import ObjectStore

META_PREFIX = "meta/"
ROOT_PREFIX = "meta/root/"
PARENT_PREFIX = "meta/parent_"
GRAVEYARD_PREFIX = "meta/graveyard/"
ESCALATION_KEY = "meta/escalation.json"
CONTENT_PREFIX = "content/"


def canonical_key(entry_id: str) -> str:
    return f"{META_PREFIX}{entry_id}.json"


def index_prefix(parent_id: Optional[str]) -> str:
    if parent_id:
        return f"{PARENT_PREFIX}{parent_id}/"
    return ROOT_PREFIX


def index_key(entry_id: str, parent_id: Optional[str]) -> str:
    return f"{index_prefix(parent_id)}{entry_id}.json"


def content_key(entry_id: str, state_id: str = PRIMARY_STATE) -> str:
    if state_id == PRIMARY_STATE:
        return f"{CONTENT_PREFIX}{entry_id}"
    return f"{CONTENT_PREFIX}{entry_id}-{state_id}"


def is_canonical_key(key: str) -> bool:
    """True for meta/{id}.json, false for index copies, ghosts and the escalation record."""
    if not key.startswith(META_PREFIX) or key == ESCALATION_KEY:
        return False
    rest = key[len(META_PREFIX):]
    return '/' not in rest and rest.endswith('.json')


def id_from_key(key: str) -> str:
    name = key.rsplit('/', 1)[-1]
    return name[:-len('.json')] if name.endswith('.json') else name


def decode_json(raw: bytes, key: str) -> Dict:
    try:
        return json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseFailure(f"Corrupt JSON at {key}: {e}", key=key) from e


class MetadataRepository:
    """
    CRUD over FileEntry records in the object store.

    Holds no cached state; every call goes to the store.
    """

    def __init__(self, store: ObjectStore):
        self.store = store

    # =========================================================================
    # SINGLE ENTRIES
    # =========================================================================

    def get(self, entry_id: str) -> FileEntry:
        key = canonical_key(entry_id)
        raw = self.store.get(key)
        if raw is None:
            raise NotFound(f"No entry with id {entry_id}", key=key)
        try:
            return FileEntry.from_dict(decode_json(raw, key))
        except ParseFailure as e:
            e.key = key
            raise

    def put(self, entry: FileEntry) -> FileEntry:
        """
        Write the canonical record and its parent/root index copy.

        If the index write fails the canonical record is restored to its
        previous value and StorageFailure propagates. Moving an entry to a new
        parent removes the old index copy.
        """
        ckey = canonical_key(entry.id)
        previous_raw = self.store.get(ckey)
        payload = json.dumps(entry.to_dict()).encode('utf-8')

        self.store.put(ckey, payload, content_type='application/json')
        try:
            self.store.put(index_key(entry.id, entry.parent_id), payload, content_type='application/json')
        except StorageFailure:
            metadata_logger.log_error(
                ErrorCodes.META_INDEX_WRITE_FAILED,
                f"Index write failed for {entry.id}, rolling back canonical record",
                {"entry_id": entry.id, "parent_id": entry.parent_id}
            )
            self._rollback(ckey, previous_raw)
            raise

        if previous_raw is not None:
            self._drop_moved_index(entry, previous_raw)
        return entry

    def _rollback(self, ckey: str, previous_raw: Optional[bytes]):
        try:
            if previous_raw is None:
                self.store.delete(ckey)
            else:
                self.store.put(ckey, previous_raw, content_type='application/json')
        except StorageFailure as e:
            metadata_logger.log_error(ErrorCodes.META_ROLLBACK_FAILED,
                                      f"Rollback of {ckey} failed: {e}", {"key": ckey})

    def _drop_moved_index(self, entry: FileEntry, previous_raw: bytes):
        try:
            old_parent = decode_json(previous_raw, canonical_key(entry.id)).get('parent_id')
        except ParseFailure:
            return
        if old_parent != entry.parent_id:
            self.store.delete(index_key(entry.id, old_parent))

    def remove_metadata(self, entry: FileEntry):
        """Remove canonical and index copies; content blobs are left alone."""
        self.store.delete(canonical_key(entry.id))
        self.store.delete(index_key(entry.id, entry.parent_id))

    def delete_content(self, entry: FileEntry):
        """
        Remove the primary blob and every quantum variant blob.
        Variant blobs are also found by key prefix, since a lost metadata
        write can leave blobs the entry no longer lists.
        """
        keys = {content_key(entry.id, state_id) for state_id in entry.quantum_states}
        keys.update(self.store.list(f"{CONTENT_PREFIX}{entry.id}-state-"))
        for key in sorted(keys):
            self.store.delete(key)

    def delete(self, entry_id: str):
        """Permanently remove an entry's metadata and its content blob(s)."""
        entry = self.get(entry_id)
        self.remove_metadata(entry)
        self.delete_content(entry)

    # =========================================================================
    # LISTINGS
    # =========================================================================

    def list_by_parent(self, parent_id: Optional[str]) -> List[FileEntry]:
        """
        List children via the parent/root index prefix.
        Unreadable entries are logged and skipped.
        """
        entries = []
        for key in self.store.list(index_prefix(parent_id)):
            entry_id = id_from_key(key)
            try:
                entry = self.get(entry_id)
            except NotFound:
                metadata_logger.log_warning(ErrorCodes.META_STALE_INDEX,
                                            f"Index entry {key} has no canonical record")
                continue
            except StorageFailure as e:
                metadata_logger.log_error(ErrorCodes.META_CORRUPT,
                                          f"Skipping unreadable entry {entry_id}: {e}", {"key": key})
                continue

            if entry.parent_id != parent_id:
                metadata_logger.log_warning(ErrorCodes.META_STALE_INDEX,
                                            f"Index entry {key} points at a moved entry")
                continue
            entries.append(entry)
        return entries

    def canonical_ids(self, limit: Optional[int] = None) -> List[str]:
        """Ids of canonical records, bounded by limit."""
        ids = [id_from_key(key) for key in self.store.list(META_PREFIX) if is_canonical_key(key)]
        if limit is not None:
            return ids[:limit]
        return ids

    def iter_entries(self, limit: Optional[int] = None) -> Iterator[FileEntry]:
        """Yield every readable canonical entry, skipping corrupt ones."""
        for entry_id in self.canonical_ids(limit):
            try:
                yield self.get(entry_id)
            except (NotFound, StorageFailure) as e:
                metadata_logger.log_error(ErrorCodes.META_CORRUPT,
                                          f"Skipping unreadable entry {entry_id}: {e}")

    # =========================================================================
    # CONTENT
    # =========================================================================

    def get_content(self, entry_id: str, state_id: str = PRIMARY_STATE) -> Optional[bytes]:
        return self.store.get(content_key(entry_id, state_id))

    def put_content(self, entry_id: str, data: bytes, state_id: str = PRIMARY_STATE,
                    content_type: Optional[str] = None):
        self.store.put(content_key(entry_id, state_id), data, content_type=content_type)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def rebuild_indexes(self, limit: Optional[int] = None) -> Dict[str, int]:
        """
        Rewrite every index copy from its canonical record and remove index
        keys whose canonical record is gone or lives under another parent.
        """
        rewritten = 0
        removed = 0
        wanted = set()
        scanned = set()

        for entry in self.iter_entries(limit):
            scanned.add(entry.id)
            key = index_key(entry.id, entry.parent_id)
            wanted.add(key)
            try:
                self.store.put(key, json.dumps(entry.to_dict()).encode('utf-8'),
                               content_type='application/json')
                rewritten += 1
            except StorageFailure as e:
                metadata_logger.log_error(ErrorCodes.META_INDEX_WRITE_FAILED,
                                          f"Could not rewrite {key}: {e}")

        index_keys = self.store.list(ROOT_PREFIX) + self.store.list(PARENT_PREFIX)
        for key in index_keys:
            if key in wanted:
                continue
            entry_id = id_from_key(key)
            if limit is not None and entry_id not in scanned and \
                    self.store.get(canonical_key(entry_id)) is not None:
                # outside the scanned window, leave it for a later run
                continue
            try:
                self.store.delete(key)
                removed += 1
            except StorageFailure as e:
                metadata_logger.log_error(ErrorCodes.STORAGE_DELETE_FAILED,
                                          f"Could not remove stale index {key}: {e}")

        metadata_logger.log_info(ErrorCodes.META_INDEX_REBUILT,
                                 f"Rebuilt indexes: {rewritten} rewritten, {removed} removed")
        return {"rewritten": rewritten, "removed": removed}

"""
Key store contract and an in-process implementation.

The store is plain CRUD plus one atomic primitive, ``conditional_bind``, which sets
a key's device binding only if it is currently unbound. Every other component goes
through this contract, so the storage engine can be swapped without touching the
binding rules.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from keygate.core.errors import Conflict, InvalidInput, NotFound

logger = logging.getLogger(__name__)

# Fields an administrative patch may touch; id and created_at are immutable
PATCHABLE_FIELDS = frozenset({"label", "device_binding", "expires_at"})

# Column widths of the access_keys table
MAX_KEY_ID_LENGTH = 64
MAX_DEVICE_ID_LENGTH = 255


@dataclass(frozen=True)
class KeyRecord:
    """Snapshot of a stored key."""
    id: str
    label: str
    device_binding: Optional[str]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def is_bound(self) -> bool:
        return self.device_binding is not None


class BindStatus(str, Enum):
    """Outcome of a conditional bind attempt."""
    BOUND_NOW = "bound_now"
    ALREADY_BOUND = "already_bound"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


@dataclass(frozen=True)
class BindResult:
    status: BindStatus
    device_binding: Optional[str] = None


@dataclass(frozen=True)
class KeyPredicate:
    """
    Selection criteria for bulk deletes.

    Criteria are AND-ed. At least one must be given so a bulk delete can never
    silently mean "everything".
    """
    expired_before: Optional[datetime] = None
    key_ids: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        if self.expired_before is None and self.key_ids is None:
            raise InvalidInput("A delete predicate needs at least one criterion")

    def matches(self, record: KeyRecord) -> bool:
        if self.expired_before is not None and not record.expires_at < self.expired_before:
            return False
        if self.key_ids is not None and record.id not in self.key_ids:
            return False
        return True


def validate_patch(patch: Dict) -> Dict:
    """Reject empty patches and patches touching immutable fields."""
    if not patch:
        raise InvalidInput("Nothing to update")
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise InvalidInput(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    return patch


class KeyStore(ABC):
    """Read/write contract the gateway and lifecycle service rely on."""

    @abstractmethod
    def get(self, key_id: str) -> Optional[KeyRecord]:
        """Return the record or None if absent."""

    @abstractmethod
    def create(self, record: KeyRecord) -> KeyRecord:
        """Insert a new record. Raises Conflict if the id already exists."""

    @abstractmethod
    def conditional_bind(self, key_id: str, device_id: str, now: datetime) -> BindResult:
        """
        Bind ``device_id`` only if the key is currently unbound and not expired.

        Must be atomic per key: of several concurrent callers on an unbound key
        exactly one observes BOUND_NOW, the rest observe ALREADY_BOUND with the
        winning device.
        """

    @abstractmethod
    def update_fields(self, key_id: str, patch: Dict) -> KeyRecord:
        """Apply a patch and return the updated record. Raises NotFound if absent."""

    @abstractmethod
    def delete(self, key_id: str) -> None:
        """Delete one record. Raises NotFound if absent."""

    @abstractmethod
    def delete_where(self, predicate: KeyPredicate) -> int:
        """Delete every matching record and return how many were removed."""

    @abstractmethod
    def list(self) -> List[KeyRecord]:
        """All records, newest first (created_at descending)."""


class InMemoryKeyStore(KeyStore):
    """
    Dict-backed store guarded by a single lock.

    Used by tests and for embedding the gateway without a database.
    """

    def __init__(self, records: Optional[List[KeyRecord]] = None):
        self._records: Dict[str, KeyRecord] = {}
        self._lock = threading.Lock()
        for record in records or []:
            self.create(record)

    def get(self, key_id: str) -> Optional[KeyRecord]:
        with self._lock:
            return self._records.get(key_id)

    def create(self, record: KeyRecord) -> KeyRecord:
        with self._lock:
            if record.id in self._records:
                raise Conflict(f"Key {record.id} already exists")
            self._records[record.id] = record
            return record

    def conditional_bind(self, key_id: str, device_id: str, now: datetime) -> BindResult:
        with self._lock:
            record = self._records.get(key_id)
            if record is None:
                return BindResult(BindStatus.NOT_FOUND)
            if record.is_expired(now):
                return BindResult(BindStatus.EXPIRED, record.device_binding)
            if record.device_binding is not None:
                return BindResult(BindStatus.ALREADY_BOUND, record.device_binding)
            self._records[key_id] = replace(record, device_binding=device_id)
            return BindResult(BindStatus.BOUND_NOW, device_id)

    def update_fields(self, key_id: str, patch: Dict) -> KeyRecord:
        validate_patch(patch)
        with self._lock:
            record = self._records.get(key_id)
            if record is None:
                raise NotFound()
            updated = replace(record, **patch)
            self._records[key_id] = updated
            return updated

    def delete(self, key_id: str) -> None:
        with self._lock:
            if self._records.pop(key_id, None) is None:
                raise NotFound()

    def delete_where(self, predicate: KeyPredicate) -> int:
        with self._lock:
            doomed = [key_id for key_id, record in self._records.items() if predicate.matches(record)]
            for key_id in doomed:
                del self._records[key_id]
            return len(doomed)

    def list(self) -> List[KeyRecord]:
        with self._lock:
            records = list(self._records.values())
        # Stable sort keeps insertion order among equal timestamps
        return sorted(records, key=lambda r: r.created_at, reverse=True)

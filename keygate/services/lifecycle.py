"""
Administrative key lifecycle: issue, extend, reset, relabel, delete, purge, duplicate.

These are privileged, direct mutations on the key store. They never touch the
binding algorithm, but they keep its invariants: an extend never shortens a key's
life and never resurrects a deleted key, and a reset is the only way a binding is
cleared.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from keygate.core.config import KeyPolicy
from keygate.core.durations import whole_units
from keygate.core.errors import Conflict, GenerationConflict, InvalidInput, KeyGateError, NotFound
from keygate.core.security import mask_key
from keygate.services.key_store import KeyPredicate, KeyRecord, KeyStore

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "No Label"
MAX_LABEL_LENGTH = 255

KEY_STATUS_FILTERS = ("active", "expired", "linked")


@dataclass
class BulkIssueResult:
    """Outcome of a bulk issue; ``issued`` holds only keys that were actually stored."""
    requested: int
    effective: int
    issued: List[KeyRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.error is None and len(self.issued) == self.effective


@dataclass
class BulkResetResult:
    reset: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    error: Optional[str] = None


def normalize_label(label: Optional[str]) -> str:
    if label is None or not label.strip():
        return DEFAULT_LABEL
    label = label.strip()
    if len(label) > MAX_LABEL_LENGTH:
        raise InvalidInput(f"Label must be at most {MAX_LABEL_LENGTH} characters")
    return label


def _require_positive(duration: timedelta, name: str = "duration") -> timedelta:
    if not isinstance(duration, timedelta) or duration <= timedelta(0):
        raise InvalidInput(f"{name} must be a positive duration")
    return duration


def _require_key_id(key_id: Optional[str]) -> str:
    if key_id is None or not key_id.strip():
        raise InvalidInput("key id is required")
    return key_id


class KeyLifecycleService:
    """
    Privileged operations on access keys.

    Construct per request with the store and the explicit policy. Callers check
    the admin credential before reaching any of these methods.
    """

    def __init__(self, store: KeyStore, policy: KeyPolicy):
        self.store = store
        self.policy = policy

    # ---- queries ----

    def list_keys(self, status_filter: Optional[str] = None) -> List[KeyRecord]:
        """
        All keys, newest first.

        Args:
            status_filter: Optional "active", "expired" or "linked"
        """
        if status_filter is not None and status_filter not in KEY_STATUS_FILTERS:
            raise InvalidInput(f"Unknown status filter: {status_filter}")

        records = self.store.list()
        if status_filter is None:
            return records

        now = self.policy.now()
        if status_filter == "active":
            return [r for r in records if not r.is_expired(now)]
        if status_filter == "expired":
            return [r for r in records if r.is_expired(now)]
        return [r for r in records if r.is_bound]

    def stats(self) -> Dict[str, int]:
        """Counts of total, active, expired and device-linked keys."""
        records = self.store.list()
        now = self.policy.now()
        expired = sum(1 for r in records if r.is_expired(now))
        return {
            "total": len(records),
            "active": len(records) - expired,
            "expired": expired,
            "linked": sum(1 for r in records if r.is_bound),
        }

    def get_key(self, key_id: str) -> KeyRecord:
        record = self.store.get(_require_key_id(key_id))
        if record is None:
            raise NotFound()
        return record

    # ---- issuing ----

    def issue(self, label: Optional[str] = None, duration: Optional[timedelta] = None) -> KeyRecord:
        """
        Issue a new unbound key valid for ``duration`` from now.

        Raises:
            GenerationConflict: The generated id already exists; retry
        """
        duration = _require_positive(duration if duration is not None else self.policy.default_duration)
        now = self.policy.now()
        record = KeyRecord(
            id=self.policy.new_key_id(),
            label=normalize_label(label),
            device_binding=None,
            created_at=now,
            expires_at=now + duration,
        )
        try:
            self.store.create(record)
        except Conflict as exc:
            logger.warning(f"Generated key id {mask_key(record.id)} collided with an existing key")
            raise GenerationConflict() from exc

        logger.info(f"Issued key {mask_key(record.id)} expiring {record.expires_at.isoformat()}")
        return record

    def issue_public(self) -> KeyRecord:
        """Issue a temporary key for the public get-key flow."""
        today = self.policy.now().date().isoformat()
        return self.issue(label=f"Public - {today}", duration=self.policy.public_duration)

    def bulk_issue(self, count: int, label: Optional[str] = None,
                   duration: Optional[timedelta] = None) -> BulkIssueResult:
        """
        Issue up to ``policy.bulk_limit`` keys.

        Counts above the limit are clamped. Issuing stops at the first failure;
        the result reports exactly which keys were stored.
        """
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise InvalidInput("count must be a positive integer")
        duration = _require_positive(duration if duration is not None else self.policy.default_duration)
        label = normalize_label(label)

        result = BulkIssueResult(requested=count, effective=min(count, self.policy.bulk_limit))
        for _ in range(result.effective):
            try:
                result.issued.append(self.issue(label=label, duration=duration))
            except KeyGateError as exc:
                logger.warning(
                    f"Bulk issue stopped after {len(result.issued)}/{result.effective} keys: {exc.message}"
                )
                result.error = exc.message
                break
        return result

    def duplicate(self, key_id: str) -> KeyRecord:
        """
        Copy a key into a fresh unbound key with the same remaining lifetime.

        The remaining lifetime is rounded up to whole duration units (at least
        one), so an expired key's copy gets a single unit.
        """
        source = self.get_key(key_id)
        now = self.policy.now()
        unit = self.policy.duplicate_unit
        units = whole_units(source.expires_at - now, unit)
        copy = self.issue(label=f"{source.label} (copy)", duration=unit.span * units)
        logger.info(f"Duplicated key {mask_key(source.id)} as {mask_key(copy.id)} ({units} {unit.value})")
        return copy

    # ---- mutations ----

    def extend(self, key_id: str, extra: timedelta) -> KeyRecord:
        """
        Push a key's expiry out by ``extra``.

        The new expiry is ``max(expires_at, now) + extra``: an expired key restarts
        from now instead of stacking onto a stale past expiry.
        """
        _require_positive(extra, "extra duration")
        record = self.get_key(key_id)
        now = self.policy.now()
        base = record.expires_at if record.expires_at > now else now
        updated = self.store.update_fields(record.id, {"expires_at": base + extra})
        logger.info(f"Extended key {mask_key(record.id)} to {updated.expires_at.isoformat()}")
        return updated

    def reset_binding(self, key_id: str) -> KeyRecord:
        """Clear the device binding; expiry is untouched."""
        updated = self.store.update_fields(_require_key_id(key_id), {"device_binding": None})
        logger.info(f"Reset device binding of key {mask_key(key_id)}")
        return updated

    def bulk_reset(self, key_ids: Iterable[str]) -> BulkResetResult:
        """Reset several keys. Missing ids are reported, a store failure stops the run."""
        result = BulkResetResult()
        for key_id in dict.fromkeys(key_ids):
            try:
                self.reset_binding(key_id)
            except NotFound:
                result.missing.append(key_id)
            except KeyGateError as exc:
                logger.warning(f"Bulk reset stopped after {len(result.reset)} keys: {exc.message}")
                result.error = exc.message
                break
            else:
                result.reset.append(key_id)
        return result

    def update_label(self, key_id: str, label: Optional[str]) -> KeyRecord:
        return self.store.update_fields(_require_key_id(key_id), {"label": normalize_label(label)})

    def delete(self, key_id: str) -> None:
        self.store.delete(_require_key_id(key_id))
        logger.info(f"Deleted key {mask_key(key_id)}")

    def bulk_delete(self, key_ids: Iterable[str]) -> int:
        ids = frozenset(key_ids)
        if not ids:
            raise InvalidInput("key_ids must not be empty")
        deleted = self.store.delete_where(KeyPredicate(key_ids=ids))
        logger.info(f"Bulk deleted {deleted} of {len(ids)} keys")
        return deleted

    def purge_expired(self) -> int:
        """Delete every key whose expiry is strictly before now; returns the count."""
        now = self.policy.now()
        deleted = self.store.delete_where(KeyPredicate(expired_before=now))
        logger.info(f"Purged {deleted} expired keys")
        return deleted

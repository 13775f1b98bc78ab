"""
SQLAlchemy-backed key store.

The device bind is a single compare-and-set statement::

    UPDATE access_keys SET device_binding = :device
    WHERE id = :id AND device_binding IS NULL AND expires_at >= :now

The database serializes concurrent updates on the same row, so exactly one
caller sees ``rowcount == 1``; everybody else re-reads the committed binding.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from keygate.core.errors import Conflict, NotFound, StoreUnavailable
from keygate.core.security import mask_key
from keygate.models.access_key import AccessKey
from keygate.services.key_store import (
    BindResult,
    BindStatus,
    KeyPredicate,
    KeyRecord,
    KeyStore,
    validate_patch,
)

logger = logging.getLogger(__name__)

# Faults that mean the database cannot be reached right now, as opposed to a bad statement
OUTAGE_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


def _to_record(row: AccessKey) -> KeyRecord:
    return KeyRecord(
        id=row.id,
        label=row.label,
        device_binding=row.device_binding,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class SqlKeyStore(KeyStore):
    """Key store over a SQLAlchemy session. Every mutation commits immediately."""

    # A bind can lose to an admin reset landing between the UPDATE and the re-read;
    # in that case the key is unbound again and the bind is simply retried.
    MAX_BIND_ATTEMPTS = 3

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str):
        """Roll back and translate driver-level outages into StoreUnavailable."""
        try:
            yield
        except OUTAGE_ERRORS as exc:
            self.db.rollback()
            logger.warning(f"Key store unavailable during {action}: {exc}")
            raise StoreUnavailable() from exc

    def get(self, key_id: str) -> Optional[KeyRecord]:
        with self._guard("get"):
            row = self.db.execute(
                select(AccessKey)
                .where(AccessKey.id == key_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        return _to_record(row) if row is not None else None

    def create(self, record: KeyRecord) -> KeyRecord:
        with self._guard("create"):
            row = AccessKey(
                id=record.id,
                label=record.label,
                device_binding=record.device_binding,
                created_at=record.created_at,
                expires_at=record.expires_at,
            )
            self.db.add(row)
            try:
                self.db.commit()
            except (IntegrityError, FlushError) as exc:
                # FlushError: the colliding row is still in this session's identity map
                self.db.rollback()
                raise Conflict(f"Key {record.id} already exists") from exc
        return record

    def conditional_bind(self, key_id: str, device_id: str, now: datetime) -> BindResult:
        for attempt in range(self.MAX_BIND_ATTEMPTS):
            with self._guard("bind"):
                updated = self.db.query(AccessKey).filter(
                    AccessKey.id == key_id,
                    AccessKey.device_binding.is_(None),
                    AccessKey.expires_at >= now,
                ).update({AccessKey.device_binding: device_id}, synchronize_session=False)
                self.db.commit()

            if updated == 1:
                logger.debug(f"Key {mask_key(key_id)} compare-and-set bind succeeded")
                return BindResult(BindStatus.BOUND_NOW, device_id)

            current = self.get(key_id)
            if current is None:
                return BindResult(BindStatus.NOT_FOUND)
            if current.is_expired(now):
                return BindResult(BindStatus.EXPIRED, current.device_binding)
            if current.device_binding is not None:
                return BindResult(BindStatus.ALREADY_BOUND, current.device_binding)

            logger.info(f"Key {mask_key(key_id)} was reset during bind, retrying (attempt {attempt + 1})")

        raise StoreUnavailable("Device binding did not settle, please retry")

    def update_fields(self, key_id: str, patch: Dict) -> KeyRecord:
        validate_patch(patch)
        with self._guard("update"):
            updated = self.db.query(AccessKey).filter(
                AccessKey.id == key_id
            ).update(patch, synchronize_session=False)
            self.db.commit()

        if updated == 0:
            raise NotFound()

        record = self.get(key_id)
        if record is None:
            # Deleted between our update and the re-read
            raise NotFound()
        return record

    def delete(self, key_id: str) -> None:
        with self._guard("delete"):
            deleted = self.db.query(AccessKey).filter(
                AccessKey.id == key_id
            ).delete(synchronize_session=False)
            self.db.commit()

        if deleted == 0:
            raise NotFound()

    def delete_where(self, predicate: KeyPredicate) -> int:
        if predicate.key_ids is not None and not predicate.key_ids:
            return 0

        with self._guard("delete_where"):
            query = self.db.query(AccessKey)
            if predicate.expired_before is not None:
                query = query.filter(AccessKey.expires_at < predicate.expired_before)
            if predicate.key_ids is not None:
                query = query.filter(AccessKey.id.in_(sorted(predicate.key_ids)))
            deleted = query.delete(synchronize_session=False)
            self.db.commit()
        return deleted

    def list(self) -> List[KeyRecord]:
        with self._guard("list"):
            rows = self.db.execute(
                select(AccessKey)
                .order_by(AccessKey.created_at.desc())
                .execution_options(populate_existing=True)
            ).scalars().all()
        return [_to_record(row) for row in rows]

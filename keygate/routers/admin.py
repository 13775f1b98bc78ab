"""
Admin router for managing access keys.

Every endpoint requires the admin shared secret (see ``require_admin``).
Provides endpoints for:
- Listing keys and summary stats
- Issuing single keys, bulk batches and duplicates
- Extending, resetting, relabelling and deleting keys
- Purging expired keys
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from keygate.core.deps import get_lifecycle, require_admin
from keygate.schemas.keys import (
    BulkIssueResponse,
    BulkResetResponse,
    DeletedCountResponse,
    KeyBulkCreate,
    KeyCreate,
    KeyExtend,
    KeyIdList,
    KeyLabelUpdate,
    KeyListResponse,
    KeyResponse,
    KeyStatsResponse,
)
from keygate.services.lifecycle import KeyLifecycleService

router = APIRouter(prefix="/keys", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("", response_model=KeyListResponse)
def list_keys(
    status_filter: Optional[str] = Query(None, alias="status", description="active, expired or linked"),
    service: KeyLifecycleService = Depends(get_lifecycle),
):
    """
    List keys, newest first.
    """
    records = service.list_keys(status_filter)
    now = service.policy.now()
    return KeyListResponse(
        keys=[KeyResponse.from_record(r, now) for r in records],
        total=len(records),
    )


@router.get("/stats", response_model=KeyStatsResponse)
def key_stats(service: KeyLifecycleService = Depends(get_lifecycle)):
    """Total, active, expired and device-linked key counts."""
    return KeyStatsResponse(**service.stats())


@router.post("", response_model=KeyResponse, status_code=status.HTTP_201_CREATED)
def create_key(body: KeyCreate, service: KeyLifecycleService = Depends(get_lifecycle)):
    """
    Issue a new unbound key.
    """
    record = service.issue(label=body.label, duration=body.to_timedelta())
    return KeyResponse.from_record(record, service.policy.now())


@router.post("/bulk", response_model=BulkIssueResponse, status_code=status.HTTP_201_CREATED)
def bulk_create_keys(body: KeyBulkCreate, service: KeyLifecycleService = Depends(get_lifecycle)):
    """
    Issue several keys with the same label and lifetime.

    The count is clamped to the bulk limit. If issuing fails part-way the keys
    already stored are returned together with the error.
    """
    result = service.bulk_issue(body.count, label=body.label, duration=body.to_timedelta())
    now = service.policy.now()
    return BulkIssueResponse(
        keys=[KeyResponse.from_record(r, now) for r in result.issued],
        requested=result.requested,
        effective=result.effective,
        issued=len(result.issued),
        error=result.error,
    )


@router.post("/purge-expired", response_model=DeletedCountResponse)
def purge_expired_keys(service: KeyLifecycleService = Depends(get_lifecycle)):
    """Delete every expired key."""
    return DeletedCountResponse(deleted=service.purge_expired())


@router.post("/bulk-reset", response_model=BulkResetResponse)
def bulk_reset_keys(body: KeyIdList, service: KeyLifecycleService = Depends(get_lifecycle)):
    """Clear the device binding of several keys."""
    result = service.bulk_reset(body.key_ids)
    return BulkResetResponse(reset=result.reset, missing=result.missing, error=result.error)


@router.post("/bulk-delete", response_model=DeletedCountResponse)
def bulk_delete_keys(body: KeyIdList, service: KeyLifecycleService = Depends(get_lifecycle)):
    """Delete several keys; ids that do not exist are ignored."""
    return DeletedCountResponse(deleted=service.bulk_delete(body.key_ids))


@router.get("/{key_id}", response_model=KeyResponse)
def get_key(key_id: str, service: KeyLifecycleService = Depends(get_lifecycle)):
    return KeyResponse.from_record(service.get_key(key_id), service.policy.now())


@router.patch("/{key_id}", response_model=KeyResponse)
def update_key_label(key_id: str, body: KeyLabelUpdate, service: KeyLifecycleService = Depends(get_lifecycle)):
    """Change a key's label."""
    record = service.update_label(key_id, body.label)
    return KeyResponse.from_record(record, service.policy.now())


@router.delete("/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_key(key_id: str, service: KeyLifecycleService = Depends(get_lifecycle)):
    """Permanently delete a key."""
    service.delete(key_id)


@router.post("/{key_id}/extend", response_model=KeyResponse)
def extend_key(key_id: str, body: KeyExtend, service: KeyLifecycleService = Depends(get_lifecycle)):
    """
    Extend a key's lifetime.

    An expired key restarts from now; an active key is extended from its
    current expiry.
    """
    record = service.extend(key_id, body.to_timedelta())
    return KeyResponse.from_record(record, service.policy.now())


@router.post("/{key_id}/reset", response_model=KeyResponse)
def reset_key_binding(key_id: str, service: KeyLifecycleService = Depends(get_lifecycle)):
    """Unlink a key from its device so the next redemption can claim it."""
    record = service.reset_binding(key_id)
    return KeyResponse.from_record(record, service.policy.now())


@router.post("/{key_id}/duplicate", response_model=KeyResponse, status_code=status.HTTP_201_CREATED)
def duplicate_key(key_id: str, service: KeyLifecycleService = Depends(get_lifecycle)):
    """Create a fresh unbound copy of a key with the same remaining lifetime."""
    record = service.duplicate(key_id)
    return KeyResponse.from_record(record, service.policy.now())

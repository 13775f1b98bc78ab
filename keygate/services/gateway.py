"""
Binding gateway: decides whether a (key, device) redemption is authorized.

A key moves through these states, derived from its record and the current time:

    MISSING         no record                          -> terminal
    EXPIRED         now > expires_at                   -> terminal, whatever the binding
    UNBOUND         no device yet, not expired         -> BOUND_MATCH on first redemption
    BOUND_MATCH     bound to the presenting device     -> authorized
    BOUND_MISMATCH  bound to some other device         -> denied until an admin reset

The gateway is the only code path that writes a device binding, and it only
does so through the store's atomic ``conditional_bind``.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from keygate.core.config import KeyPolicy
from keygate.core.errors import DeviceMismatch, Expired, InvalidInput, KeyGateError, NotFound
from keygate.core.security import fingerprint, mask_key
from keygate.services.key_store import (
    MAX_DEVICE_ID_LENGTH,
    MAX_KEY_ID_LENGTH,
    BindStatus,
    KeyRecord,
    KeyStore,
)

logger = logging.getLogger(__name__)


class KeyState(str, Enum):
    MISSING = "missing"
    EXPIRED = "expired"
    UNBOUND = "unbound"
    BOUND_MATCH = "bound_match"
    BOUND_MISMATCH = "bound_mismatch"


class RedemptionOutcome(str, Enum):
    """What the content-delivery side is told about a redemption."""
    AUTHORIZED = "authorized"
    MISSING_PARAMETERS = "missing_parameters"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    DEVICE_MISMATCH = "device_mismatch"


def derive_state(record: Optional[KeyRecord], device_id: str, now: datetime) -> KeyState:
    """
    Classify a key for the presenting device.

    Expiry is checked first: an expired key is EXPIRED even when it is bound
    to exactly this device.
    """
    if record is None:
        return KeyState.MISSING
    if record.is_expired(now):
        return KeyState.EXPIRED
    if record.device_binding is None:
        return KeyState.UNBOUND
    if record.device_binding == device_id:
        return KeyState.BOUND_MATCH
    return KeyState.BOUND_MISMATCH


@dataclass(frozen=True)
class Redemption:
    """Result of one redemption attempt."""
    outcome: RedemptionOutcome
    record: Optional[KeyRecord] = None

    @property
    def authorized(self) -> bool:
        return self.outcome is RedemptionOutcome.AUTHORIZED

    def denial(self) -> Optional[KeyGateError]:
        """The taxonomy error matching a failed outcome, or None when authorized."""
        if self.authorized:
            return None
        if self.outcome is RedemptionOutcome.MISSING_PARAMETERS:
            return InvalidInput("Invalid key or missing parameters")
        if self.outcome is RedemptionOutcome.NOT_FOUND:
            return NotFound()
        if self.outcome is RedemptionOutcome.EXPIRED:
            return Expired()
        return DeviceMismatch()


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


class BindingGateway:
    """
    Validates redemptions against a key store.

    Validation failures are returned as outcomes, never retried here; retrying is
    the caller's decision. Store outages propagate as ``StoreUnavailable`` so an
    outage is never mistaken for an invalid key.
    """

    def __init__(self, store: KeyStore, policy: KeyPolicy):
        self.store = store
        self.policy = policy

    def redeem(self, key_id: Optional[str], device_id: Optional[str]) -> Redemption:
        """
        Validate a key for a device, binding it on first use.

        Args:
            key_id: Key presented by the client
            device_id: Caller-supplied device identifier (HWID)

        Returns:
            Redemption with the outcome and, when known, the key record as it
            stands after the attempt
        """
        # 1. Parameters, checked before any store access
        if not _present(key_id) or not _present(device_id):
            return Redemption(RedemptionOutcome.MISSING_PARAMETERS)
        if len(key_id) > MAX_KEY_ID_LENGTH or len(device_id) > MAX_DEVICE_ID_LENGTH:
            # Longer than the stored columns allow, so never a valid key or bindable device
            return Redemption(RedemptionOutcome.MISSING_PARAMETERS)

        # 2-3. Existence, then expiry ahead of any binding logic
        record = self.store.get(key_id)
        now = self.policy.now()
        state = derive_state(record, device_id, now)

        if state is KeyState.MISSING:
            return Redemption(RedemptionOutcome.NOT_FOUND)
        if state is KeyState.EXPIRED:
            return Redemption(RedemptionOutcome.EXPIRED, record)

        # 5. Already bound: plain equality
        if state is KeyState.BOUND_MATCH:
            return Redemption(RedemptionOutcome.AUTHORIZED, record)
        if state is KeyState.BOUND_MISMATCH:
            logger.info(f"Key {mask_key(key_id)} denied for device {fingerprint(device_id)}: bound elsewhere")
            return Redemption(RedemptionOutcome.DEVICE_MISMATCH, record)

        # 4. Unbound: claim it atomically; a lost race is resolved by the stored binding
        return self._claim(record, device_id, now)

    def _claim(self, record: KeyRecord, device_id: str, now: datetime) -> Redemption:
        result = self.store.conditional_bind(record.id, device_id, now)

        if result.status is BindStatus.BOUND_NOW:
            logger.info(f"Key {mask_key(record.id)} bound to device {fingerprint(device_id)}")
            return Redemption(RedemptionOutcome.AUTHORIZED, replace(record, device_binding=device_id))

        if result.status is BindStatus.NOT_FOUND:
            # Deleted between our read and the bind
            return Redemption(RedemptionOutcome.NOT_FOUND)
        if result.status is BindStatus.EXPIRED:
            return Redemption(RedemptionOutcome.EXPIRED, record)

        bound = replace(record, device_binding=result.device_binding)
        if result.device_binding == device_id:
            # Same device retried concurrently; its sibling request won the bind
            return Redemption(RedemptionOutcome.AUTHORIZED, bound)

        logger.info(f"Key {mask_key(record.id)} lost bind race for device {fingerprint(device_id)}")
        return Redemption(RedemptionOutcome.DEVICE_MISMATCH, bound)

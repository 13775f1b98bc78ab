"""
Administrator credential check and key id helpers.
"""
import hashlib
import hmac

from keygate.core.config import KeyPolicy
from keygate.core.errors import Unauthorized


def fingerprint(value: str) -> str:
    """
    Short, non-reversible fingerprint of a device id for log lines.

    Device ids are caller-supplied hardware identifiers; we never log them raw.
    """
    return hashlib.sha256(value.encode()).hexdigest()[:12]


def mask_key(key_id: str) -> str:
    """Truncate a key id for log output."""
    return f"{key_id[:8]}..."


def verify_admin_credential(credential: str | None, policy: KeyPolicy) -> None:
    """
    Check the privileged credential against the configured shared secret.

    Uses a constant-time comparison. Raises the same generic ``Unauthorized``
    whether the credential is missing or wrong.
    """
    if not credential:
        raise Unauthorized()
    if not hmac.compare_digest(credential.encode("utf-8"), policy.admin_secret.encode("utf-8")):
        raise Unauthorized()

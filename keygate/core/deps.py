"""
FastAPI dependencies wiring the key store, gateway and lifecycle service.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Query, Request
from sqlalchemy.orm import Session

from keygate.core.config import KeyPolicy, get_settings
from keygate.core.security import verify_admin_credential
from keygate.db.session import get_db
from keygate.services.gateway import BindingGateway
from keygate.services.key_store import KeyStore
from keygate.services.lifecycle import KeyLifecycleService
from keygate.services.payloads import PayloadLibrary
from keygate.services.sql_key_store import SqlKeyStore


@lru_cache
def get_policy() -> KeyPolicy:
    """Key policy derived once from settings."""
    return KeyPolicy.from_settings(get_settings())


def get_payload_library() -> PayloadLibrary:
    settings = get_settings()
    return PayloadLibrary(settings.PAYLOAD_DIR, settings.PAYLOAD_FILES)


def get_key_store(db: Session = Depends(get_db)) -> KeyStore:
    return SqlKeyStore(db)


def get_gateway(
    store: KeyStore = Depends(get_key_store),
    policy: KeyPolicy = Depends(get_policy),
) -> BindingGateway:
    return BindingGateway(store, policy)


def get_lifecycle(
    store: KeyStore = Depends(get_key_store),
    policy: KeyPolicy = Depends(get_policy),
) -> KeyLifecycleService:
    return KeyLifecycleService(store, policy)


def admin_credential(authorization: Optional[str], password: Optional[str]) -> Optional[str]:
    """The credential from a raw or ``Bearer`` Authorization header, else the ``pass`` query."""
    credential = authorization or password
    if credential and credential.lower().startswith("bearer "):
        credential = credential[7:]
    return credential


def authorize_admin_request(request: Request) -> None:
    """
    Credential check for a request that never reached its route dependencies.

    Honours a ``get_policy`` override on the app.
    """
    policy = request.app.dependency_overrides.get(get_policy, get_policy)()
    credential = admin_credential(request.headers.get("authorization"), request.query_params.get("pass"))
    verify_admin_credential(credential, policy)


def require_admin(
    authorization: Optional[str] = Header(None),
    password: Optional[str] = Query(None, alias="pass"),
    policy: KeyPolicy = Depends(get_policy),
) -> None:
    """
    Gate for every admin route.

    Accepts the shared secret as a raw ``Authorization`` header, as
    ``Authorization: Bearer <secret>``, or as the ``pass`` query parameter.
    Runs before the route opens any store access.
    """
    verify_admin_credential(admin_credential(authorization, password), policy)

"""
Public router: key redemption, protected payload delivery and temporary key issuing.
"""
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, PlainTextResponse

from keygate.core.config import get_settings
from keygate.core.deps import get_gateway, get_lifecycle, get_payload_library
from keygate.core.errors import NotFound
from keygate.schemas.keys import PublicKeyResponse, RedemptionResponse
from keygate.services.gateway import BindingGateway, Redemption
from keygate.services.lifecycle import KeyLifecycleService
from keygate.services.payloads import PayloadLibrary

router = APIRouter(tags=["redeem"])


def _redemption_body(redemption: Redemption, message: str) -> dict:
    return RedemptionResponse(
        outcome=redemption.outcome,
        authorized=redemption.authorized,
        message=message,
        expires_at=redemption.record.expires_at if redemption.record else None,
    ).model_dump(mode="json")


def _deny(redemption: Redemption) -> JSONResponse:
    error = redemption.denial()
    return JSONResponse(status_code=error.status_code, content=_redemption_body(redemption, error.message))


@router.get("/redeem", response_model=RedemptionResponse)
def redeem_key(
    key: str | None = Query(None, description="Access key"),
    hwid: str | None = Query(None, description="Device identifier"),
    gateway: BindingGateway = Depends(get_gateway),
):
    """
    Validate a key for a device, binding the key on its first redemption.
    """
    redemption = gateway.redeem(key, hwid)
    if not redemption.authorized:
        return _deny(redemption)
    return _redemption_body(redemption, "Access granted.")


@router.get("/payloads/{name}", response_class=PlainTextResponse)
def deliver_payload(
    name: str,
    key: str | None = Query(None),
    hwid: str | None = Query(None),
    gateway: BindingGateway = Depends(get_gateway),
    library: PayloadLibrary = Depends(get_payload_library),
):
    """
    Serve a protected payload after a successful redemption.

    Unknown payload names are rejected before the key is looked at, so they
    can never trigger a device bind.
    """
    if not library.knows(name):
        raise NotFound(f"Unknown payload: {name}")

    redemption = gateway.redeem(key, hwid)
    if not redemption.authorized:
        return _deny(redemption)

    return PlainTextResponse(library.load(name))


@router.get("/getkey", response_model=PublicKeyResponse, status_code=status.HTTP_201_CREATED)
def get_public_key(service: KeyLifecycleService = Depends(get_lifecycle)):
    """
    Issue a temporary key without admin credentials.

    Keys last ``PUBLIC_KEY_HOURS`` and bind to the first device that redeems them.
    """
    settings = get_settings()
    if not settings.PUBLIC_ISSUE_ENABLED:
        raise NotFound("Public key issuing is disabled")

    record = service.issue_public()
    hours = int(service.policy.public_duration.total_seconds() // 3600)
    return PublicKeyResponse(key=record.id, expires_at=record.expires_at, hours=hours)

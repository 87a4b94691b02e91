from __future__ import annotations

from fastapi import APIRouter, Request, status

from ..dependencies import Bdd, Gateway, Reconciliation
from ..schemas import CheckoutCreateRequest, CheckoutCreateResponse, WebhookAck
from ..services import checkout_service, webhook_service

router = APIRouter(prefix="/api/pay", tags=["payment"])


@router.post(
    "/checkout",
    response_model=CheckoutCreateResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def create_checkout(
    payload: CheckoutCreateRequest,
    bdd: Bdd,
    gateway: Gateway,
) -> CheckoutCreateResponse:
    result = await checkout_service.create_checkout_session(payload, bdd=bdd, gateway=gateway)
    return CheckoutCreateResponse(url=result.url, session_id=result.session_id)


@router.post("/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(request: Request, context: Reconciliation) -> WebhookAck:
    # Signature verification needs the raw, unparsed body.
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    await webhook_service.handle_webhook(payload, signature, context=context)
    return WebhookAck()

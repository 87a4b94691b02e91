from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from .services.bdd_client import BddClient
from .services.mailer_client import MailerClient
from .services.reconciliation import ReconciliationContext
from .services.stripe_gateway import StripeGateway


def get_bdd_client() -> BddClient:
    return BddClient()


def get_mailer_client() -> MailerClient:
    return MailerClient()


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()


Bdd = Annotated[BddClient, Depends(get_bdd_client)]
Mailer = Annotated[MailerClient, Depends(get_mailer_client)]
Gateway = Annotated[StripeGateway, Depends(get_stripe_gateway)]


def get_reconciliation_context(
    bdd: Bdd, mailer: Mailer, gateway: Gateway
) -> ReconciliationContext:
    return ReconciliationContext(bdd=bdd, mailer=mailer, gateway=gateway)


Reconciliation = Annotated[ReconciliationContext, Depends(get_reconciliation_context)]

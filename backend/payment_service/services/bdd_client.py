from __future__ import annotations

import logging
from typing import Any, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import settings
from ..errors import UpstreamNotFoundError, UpstreamServiceError
from ..schemas import PremiumPlan, SubscriptionRecord, UserRecord

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _unwrap(payload: Any) -> Any:
    # BDD answers either with the bare record or with {"success": ..., "data": record}.
    if isinstance(payload, Mapping) and "data" in payload and "success" in payload:
        return payload.get("data")
    return payload


class BddClient:
    """Thin async client over the BDD data service (users, premium plans, subscriptions)."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.service_bdd_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.request(method, url, json=json, params=params)
            except httpx.HTTPError as exc:
                logger.error("BDD %s %s unreachable: %s", method, path, exc)
                raise UpstreamServiceError("Service BDD non disponible") from exc

        if response.status_code == 404:
            raise UpstreamNotFoundError(
                f"BDD resource not found: {path}", upstream_status=response.status_code
            )
        if response.status_code >= 400:
            logger.error(
                "BDD %s %s failed: status=%s body=%s",
                method,
                path,
                response.status_code,
                response.text,
            )
            raise UpstreamServiceError(
                f"BDD {method} {path} failed with status {response.status_code}",
                upstream_status=response.status_code,
            )
        if not response.content:
            return None
        try:
            return _unwrap(response.json())
        except ValueError as exc:
            raise UpstreamServiceError(f"BDD {method} {path} returned invalid JSON") from exc

    def _parse(self, model: type[ModelT], payload: Any, path: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logger.error("BDD %s returned an unexpected %s payload: %s", path, model.__name__, exc)
            raise UpstreamServiceError(f"BDD {path} returned an unexpected payload") from exc

    def _subscription_from(self, payload: Any, path: str) -> SubscriptionRecord | None:
        # Writes answer with the record itself or with {"message": ..., "subscription": record}.
        if isinstance(payload, Mapping) and isinstance(payload.get("subscription"), Mapping):
            payload = payload["subscription"]
        if not isinstance(payload, Mapping):
            return None
        try:
            return SubscriptionRecord.model_validate(payload)
        except ValidationError as exc:
            logger.warning("BDD %s accepted the write but echoed an unexpected payload: %s", path, exc)
            return None

    async def get_user(self, user_id: str) -> UserRecord:
        payload = await self._request("GET", f"/api/users/{user_id}")
        if not payload:
            raise UpstreamNotFoundError(f"Utilisateur non trouvé : {user_id}")
        return self._parse(UserRecord, payload, f"/api/users/{user_id}")

    async def get_premium(self, premium_id: str) -> PremiumPlan:
        payload = await self._request("GET", f"/api/premium/{premium_id}")
        if not payload:
            raise UpstreamNotFoundError(f"Premium non trouvé : {premium_id}")
        return self._parse(PremiumPlan, payload, f"/api/premium/{premium_id}")

    async def create_subscription(self, data: Mapping[str, Any]) -> SubscriptionRecord | None:
        payload = await self._request("POST", "/api/subscription", json=data)
        return self._subscription_from(payload, "/api/subscription")

    async def replace_subscription(
        self, subscription_id: str, data: Mapping[str, Any]
    ) -> SubscriptionRecord | None:
        path = f"/api/subscription/{subscription_id}"
        payload = await self._request("PUT", path, json=data)
        return self._subscription_from(payload, path)

    async def update_subscription(self, subscription_id: str, fields: Mapping[str, Any]) -> None:
        await self._request("PATCH", f"/api/subscription/{subscription_id}", json=fields)

    async def renew_subscription(self, subscription_id: str, *, duration: int) -> None:
        await self._request(
            "PATCH", f"/api/subscription/{subscription_id}/renew", json={"duration": duration}
        )

    async def cancel_subscription(self, subscription_id: str) -> None:
        await self._request("PATCH", f"/api/subscription/{subscription_id}/cancel")

    async def search_subscriptions(
        self,
        *,
        transaction_id: str | None = None,
        user_email: str | None = None,
        status: str | None = None,
    ) -> list[SubscriptionRecord]:
        params = {
            key: value
            for key, value in (
                ("transactionId", transaction_id),
                ("userEmail", user_email),
                ("status", status),
            )
            if value
        }
        try:
            payload = await self._request("GET", "/api/subscription/search", params=params)
        except UpstreamNotFoundError:
            return []
        if isinstance(payload, Mapping):
            payload = payload.get("subscriptions")
        if not isinstance(payload, list):
            return []
        return [
            self._parse(SubscriptionRecord, item, "/api/subscription/search")
            for item in payload
            if isinstance(item, Mapping)
        ]

    async def find_subscription_by_transaction(self, transaction_id: str) -> SubscriptionRecord | None:
        matches = await self.search_subscriptions(transaction_id=transaction_id)
        return matches[0] if matches else None

"""Paystack REST client used by the refund and dispute workers and the admin API.

Every call has an explicit timeout. Transport problems (timeouts, connection
resets) raise ``ProviderError`` so callers can count an attempt and retry on a
later run; HTTP-level rejections come back as a ``ProviderResult`` with
``ok=False`` and the provider's body kept verbatim.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from payrecon.core.config import PAYSTACK_BASE_URL, PAYSTACK_SECRET_KEY, PROVIDER_TIMEOUT_SECONDS

log = logging.getLogger("payrecon.provider")


class ProviderError(Exception):
    """Transient failure talking to the provider; safe to retry."""


class ProviderTimeoutError(ProviderError):
    pass


class ProviderResult(BaseModel):
    ok: bool
    status_code: int
    body: Dict[str, Any] = Field(default_factory=dict)


class PaystackClient:
    def __init__(
        self,
        secret_key: str = PAYSTACK_SECRET_KEY,
        base_url: str = PAYSTACK_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    async def _post(self, path: str, payload: Dict[str, Any]) -> ProviderResult:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Provider call to {path} timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise ProviderError(f"Provider call to {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"raw": body}

        ok = response.is_success and bool(body.get("status"))
        if not ok:
            log.warning(f"Provider rejected {path} with HTTP {response.status_code}: {body.get('message')}")
        return ProviderResult(ok=ok, status_code=response.status_code, body=body)

    async def create_refund(self, transaction_reference: str, amount_minor: int) -> ProviderResult:
        """POST /refund; ``amount_minor`` is in kobo."""
        return await self._post("/refund", {"transaction": transaction_reference, "amount": amount_minor})

    async def submit_dispute_evidence(self, dispute_ref: str, evidence: Dict[str, Any]) -> ProviderResult:
        return await self._post(f"/dispute/{dispute_ref}/evidence", evidence)

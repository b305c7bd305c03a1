"""Stripe Checkout sessions for single-video purchases.

The Stripe secret key comes from the site configuration document when the
admin has set one there, otherwise from the ``STRIPE_SECRET_KEY`` setting.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import httpx

from vidstore.core import settings
from vidstore.core.retry import RetryConfig, retry_async
from vidstore.services.appwrite import AppwriteAPIError, AppwriteClient, Query
from vidstore.services.crypto import FieldCodec, get_codec, is_encrypted

logger = logging.getLogger(__name__)

STRIPE_TIMEOUT_SECONDS = 30.0


class StripeAPIError(Exception):
    """Raised when Stripe rejects a request or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.code = code


class CheckoutConfigError(Exception):
    """Raised when no Stripe secret key is configured anywhere."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str | None


def build_checkout_form(
    amount: int,
    name: str,
    success_url: str,
    cancel_url: str,
    currency: str = "usd",
) -> dict[str, str]:
    """Form fields for ``POST /v1/checkout/sessions``: one card payment, quantity 1."""
    return {
        "payment_method_types[0]": "card",
        "line_items[0][price_data][currency]": currency.lower(),
        "line_items[0][price_data][product_data][name]": name,
        "line_items[0][price_data][unit_amount]": str(amount),
        "line_items[0][quantity]": "1",
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "billing_address_collection": "auto",
    }


class CheckoutService:
    def __init__(
        self,
        appwrite: AppwriteClient | None = None,
        codec: FieldCodec | None = None,
        env_secret_key: str | None = None,
        api_base: str | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.appwrite = appwrite
        self.codec = codec or get_codec()
        self.env_secret_key = (
            env_secret_key if env_secret_key is not None else settings.stripe_secret_key
        )
        self.api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self.retry_config = retry_config or RetryConfig()
        self._transport = transport

    async def _configured_secret_key(self) -> str | None:
        if self.appwrite is None:
            return None
        try:
            response = await self.appwrite.list_documents(
                settings.database_id, settings.site_config_collection_id, [Query.limit(1)]
            )
        except (AppwriteAPIError, httpx.HTTPError) as e:
            logger.error("Error reading Stripe key from site configuration: %s", e)
            return None

        documents = response.get("documents", [])
        if not documents:
            logger.info("No site configuration document found")
            return None

        key = self.codec.decrypt_field(documents[0].get("stripe_secret_key"))
        if key and is_encrypted(key):
            logger.warning("Stripe key in site configuration could not be decrypted")
            return None
        return key or None

    async def resolve_secret_key(self) -> str:
        """Site configuration first, then the environment."""
        key = await self._configured_secret_key()
        if key:
            return key
        if self.env_secret_key:
            logger.info("Using Stripe secret key from environment")
            return self.env_secret_key
        raise CheckoutConfigError(
            "Stripe secret key not found in site configuration or environment"
        )

    async def _stripe_request(
        self, method: str, path: str, secret_key: str, data: dict[str, str]
    ) -> dict[str, Any]:
        # Same key on every retry so Stripe never creates the session twice
        headers = {
            "Authorization": f"Bearer {secret_key}",
            "Idempotency-Key": str(uuid.uuid4()),
        }

        async def do_request() -> dict[str, Any]:
            async with httpx.AsyncClient(
                timeout=STRIPE_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.request(
                    method, f"{self.api_base}{path}", data=data, headers=headers
                )

            try:
                body = response.json()
            except ValueError:
                body = {}

            if not response.is_success:
                error = body.get("error") or {}
                raise StripeAPIError(
                    error.get("message") or f"Stripe API error: HTTP {response.status_code}",
                    status_code=response.status_code,
                    error_type=error.get("type"),
                    code=error.get("code"),
                )
            return body

        try:
            return await retry_async(do_request, config=self.retry_config)
        except httpx.HTTPError as e:
            raise StripeAPIError(f"Could not reach Stripe: {e}") from e

    async def create_session(
        self,
        amount: int,
        name: str,
        success_url: str,
        cancel_url: str,
        currency: str = "usd",
    ) -> CheckoutSession:
        secret_key = await self.resolve_secret_key()
        form = build_checkout_form(amount, name, success_url, cancel_url, currency)
        logger.info("Creating checkout session: %s %d %s", name, amount, currency)
        body = await self._stripe_request("POST", "/checkout/sessions", secret_key, form)
        return CheckoutSession(id=body["id"], url=body.get("url"))

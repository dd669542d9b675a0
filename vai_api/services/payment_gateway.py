"""Checkout-session creation against the configured payment provider.

``sandbox`` never leaves the process and returns a local URL, ``mercadopago``
creates a checkout preference over HTTP, ``stripe`` creates a Checkout
Session with an inline price. Every provider receives the financial movement
id as external reference so the webhook can settle it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode
import httpx
import stripe

from vai_api.core.exceptions import UpstreamFailure, InvalidInput

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    url: str
    provider: str
    provider_reference: Optional[str] = None


class PaymentGateway:
    provider = "sandbox"

    def __init__(self, site_url: str):
        self.site_url = site_url.rstrip("/")

    def back_url(self, outcome: str) -> str:
        return f"{self.site_url}/dashboard/empresa?upgrade_status={outcome}"

    @property
    def notification_url(self) -> str:
        return f"{self.site_url}/api/v1/webhooks/payments"

    async def create_checkout(
        self,
        amount: Decimal,
        currency: str,
        external_reference: str,
        title: str,
        payer_email: Optional[str] = None,
    ) -> CheckoutSession:
        query = urlencode({"reference": external_reference, "amount": str(amount), "currency": currency})
        return CheckoutSession(url=f"{self.site_url}/checkout/sandbox?{query}", provider=self.provider)


class MercadoPagoGateway(PaymentGateway):
    provider = "mercadopago"

    def __init__(self, site_url: str, access_token: str, api_url: str = "https://api.mercadopago.com"):
        super().__init__(site_url)
        self.access_token = access_token
        self.api_url = api_url.rstrip("/")

    async def create_checkout(
        self,
        amount: Decimal,
        currency: str,
        external_reference: str,
        title: str,
        payer_email: Optional[str] = None,
    ) -> CheckoutSession:
        body = {
            "items": [{
                "title": title,
                "quantity": 1,
                "unit_price": float(amount),
                "currency_id": currency,
            }],
            "external_reference": external_reference,
            "metadata": {"movementId": external_reference},
            "notification_url": self.notification_url,
            "back_urls": {
                "success": self.back_url("success"),
                "failure": self.back_url("failure"),
                "pending": self.back_url("pending"),
            },
            "auto_return": "approved",
        }
        if payer_email:
            body["payer"] = {"email": payer_email}

        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    f"{self.api_url}/checkout/preferences",
                    json=body,
                    headers={"Authorization": f"Bearer {self.access_token}"},
                )
                response.raise_for_status()
                preference = response.json()
        except httpx.HTTPError as e:
            logger.error("MercadoPago preference creation failed for %s: %s", external_reference, e)
            raise UpstreamFailure("Could not create the payment preference", detail=str(e))

        url = preference.get("init_point") or preference.get("sandbox_init_point")
        if not url:
            logger.error("MercadoPago preference %s has no checkout URL", preference.get("id"))
            raise UpstreamFailure("Payment preference created without a checkout URL")

        return CheckoutSession(url=url, provider=self.provider, provider_reference=preference.get("id"))


class StripeGateway(PaymentGateway):
    provider = "stripe"

    def __init__(self, site_url: str, api_key: str):
        super().__init__(site_url)
        self.api_key = api_key

    async def create_checkout(
        self,
        amount: Decimal,
        currency: str,
        external_reference: str,
        title: str,
        payer_email: Optional[str] = None,
    ) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {"name": title},
                        "unit_amount": int((amount * 100).to_integral_value()),
                    },
                    "quantity": 1,
                }],
                customer_email=payer_email,
                client_reference_id=external_reference,
                metadata={"movementId": external_reference},
                success_url=self.back_url("success"),
                cancel_url=self.back_url("failure"),
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating checkout session for %s: %s", external_reference, e)
            raise UpstreamFailure("Could not create the checkout session", detail=str(e))

        logger.info("Created Stripe checkout session %s for %s", session.id, external_reference)
        return CheckoutSession(url=session.url, provider=self.provider, provider_reference=session.id)


def get_gateway(settings) -> PaymentGateway:
    """Build the gateway selected by ``PAYMENT_PROVIDER``."""
    provider = (settings.PAYMENT_PROVIDER or "sandbox").strip().lower()
    if provider == "sandbox":
        return PaymentGateway(settings.SITE_URL)
    if provider == "mercadopago":
        if not settings.MERCADOPAGO_ACCESS_TOKEN:
            logger.warning("MERCADOPAGO_ACCESS_TOKEN not configured, falling back to sandbox checkout")
            return PaymentGateway(settings.SITE_URL)
        return MercadoPagoGateway(settings.SITE_URL, settings.MERCADOPAGO_ACCESS_TOKEN, settings.MERCADOPAGO_API_URL)
    if provider == "stripe":
        if not settings.STRIPE_API_KEY:
            logger.warning("STRIPE_API_KEY not configured, falling back to sandbox checkout")
            return PaymentGateway(settings.SITE_URL)
        return StripeGateway(settings.SITE_URL, settings.STRIPE_API_KEY)
    raise InvalidInput(f"Unknown payment provider: {provider}")

import hashlib
import hmac
import json
import time
from typing import Dict, Optional
from uuid import uuid4

from shopcart.config import settings


class PaymentSignatureError(Exception):
    """Raised when a webhook payload's signature doesn't match."""
    pass


class MockPaymentAdapter:
    """
    Stand-in for the payment provider.

    Checkout hands it the server-computed total and opaque metadata (the cart
    id and totals); the provider later calls our webhook with the same
    metadata on the intent. Webhook bodies are signed with HMAC-SHA256 over
    the raw body using the shared webhook secret.
    """

    def __init__(self, secret: Optional[str] = None, delay_ms: int = None):
        self.secret = (secret or settings.PAYMENT_WEBHOOK_SECRET).encode("utf-8")
        if delay_ms is None:
            delay_ms = settings.PAYMENT_MOCK_DELAY_MS
        # Convert delay from milliseconds to seconds for time.sleep
        self.delay_seconds = delay_ms / 1000.0

    def create_intent(self, amount_cents: int, currency: str, metadata: Dict) -> Dict:
        """
        Simulates creating a payment intent.

        Args:
            amount_cents: The amount to charge, in minor units.
            currency: ISO currency code.
            metadata: string key/values echoed back on the success webhook.

        Returns:
            A dictionary shaped like a provider intent.
        """
        if amount_cents < 0:
            raise ValueError("amount_cents must not be negative")
        # Simulate network latency / gateway processing
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        intent_id = f"pi_mock_{uuid4().hex}"
        return {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_{uuid4().hex[:12]}",
            "amount": amount_cents,
            "currency": currency,
            "status": "requires_payment_method",
            "metadata": {k: "" if v is None else str(v) for k, v in metadata.items()},
        }

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.secret, payload, hashlib.sha256).hexdigest()

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> Dict:
        """Check the signature and return the decoded event."""
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            raise PaymentSignatureError("Invalid webhook signature")
        try:
            return json.loads(payload)
        except ValueError as e:
            raise PaymentSignatureError(f"Malformed webhook payload: {e}")

    def build_event(self, intent: Dict, event_type: str = "payment_intent.succeeded") -> bytes:
        """Serialize a webhook event for an intent (used by tests and tools)."""
        event = {
            "id": f"evt_mock_{uuid4().hex}",
            "type": event_type,
            "data": {"object": intent},
        }
        return json.dumps(event).encode("utf-8")

    def health_check(self) -> bool:
        return bool(self.secret)

"""
Webhook security utilities.

Provides signature generation and verification for webhook delivery,
plus secret masking and delivery identifiers.
"""

import hmac
import hashlib
from typing import Dict, Optional, Tuple, Union
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
SIGNATURE_LENGTH = len(SIGNATURE_PREFIX) + hashlib.sha256().digest_size * 2
SIGNATURE_HEADER = "X-Webhook-Signature"

Payload = Union[str, bytes]


def _to_bytes(value: Payload) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode('utf-8')


class WebhookSecurity:
    """Handles webhook security operations."""

    @staticmethod
    def generate_signature(payload: Payload, secret: str) -> str:
        """
        Generate HMAC-SHA256 signature for webhook payload.

        Args:
            payload: Exact body bytes (str is UTF-8 encoded)
            secret: Webhook secret

        Returns:
            Hex-encoded digest
        """
        return hmac.new(
            _to_bytes(secret),
            _to_bytes(payload),
            hashlib.sha256
        ).hexdigest()

    @staticmethod
    def sign_payload(payload: Payload, secret: str) -> str:
        """Signature header value: ``sha256=<hex>``."""
        return SIGNATURE_PREFIX + WebhookSecurity.generate_signature(payload, secret)

    @staticmethod
    def verify_signature(payload: Payload, signature: Optional[str], secret: str) -> bool:
        """
        Verify webhook signature on the receiving side.

        A signature of the wrong length, prefix or alphabet is rejected before
        any HMAC is computed. Otherwise the expected value is recomputed over the raw
        received bytes and compared in constant time.

        Args:
            payload: Raw received body
            signature: Received ``sha256=<hex>`` header value
            secret: Shared webhook secret

        Returns:
            True if signature is valid
        """
        if not isinstance(signature, str) or len(signature) != SIGNATURE_LENGTH:
            return False

        is_valid, _ = WebhookSecurity.parse_signature_header(signature)
        if not is_valid:
            return False

        try:
            expected_signature = WebhookSecurity.sign_payload(payload, secret)
        except (TypeError, AttributeError) as e:
            logger.error(f"Error verifying webhook signature: {e}")
            return False

        return hmac.compare_digest(
            signature.encode('utf-8', 'replace'),
            expected_signature.encode('ascii')
        )

    @staticmethod
    def create_signature_headers(payload: Payload, secret: Optional[str]) -> Dict[str, str]:
        """
        Create signature headers for webhook delivery.

        Returns an empty dict when no secret is configured, so the header is
        omitted entirely.
        """
        if not secret:
            return {}
        return {SIGNATURE_HEADER: WebhookSecurity.sign_payload(payload, secret)}

    @staticmethod
    def create_delivery_id() -> str:
        """Unique delivery ID, stable across the retries of one delivery."""
        return str(uuid4())

    @staticmethod
    def mask_secret(secret: str) -> str:
        """
        Mask webhook secret for logging/display.
        """
        if len(secret) <= 8:
            return "*" * len(secret)

        return secret[:4] + "*" * (len(secret) - 8) + secret[-4:]

    @staticmethod
    def parse_signature_header(signature_header: str) -> Tuple[bool, Optional[str]]:
        """
        Parse and validate signature header format.

        Returns:
            Tuple of (is_valid, hex_digest)
        """
        if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
            return False, None

        digest = signature_header[len(SIGNATURE_PREFIX):]
        if len(signature_header) != SIGNATURE_LENGTH:
            return False, None
        if not all(c in '0123456789abcdef' for c in digest.lower()):
            return False, None

        return True, digest


def sign_webhook_payload(payload: Payload, secret: str) -> str:
    """Module-level alias of WebhookSecurity.sign_payload."""
    return WebhookSecurity.sign_payload(payload, secret)


def verify_webhook_signature(payload: Payload, signature: Optional[str], secret: str) -> bool:
    """Verify webhook signature (for use in a receiving webhook handler)."""
    return WebhookSecurity.verify_signature(payload, signature, secret)

"""
Webhook validation utilities.

Provides validation for webhook registrations and delivery responses.
"""

import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse
import logging

from .models import RegisterWebhookParams

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r'^0x[0-9a-f]{40}$')


class WebhookValidator:
    """Validates webhook registrations and responses."""

    @staticmethod
    def validate_registration(params: RegisterWebhookParams) -> Tuple[bool, List[str]]:
        """
        Validate webhook registration parameters.

        Args:
            params: Registration to validate

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        url_valid, url_error = WebhookValidator.validate_url(params.url)
        if not url_valid:
            errors.append(f"Invalid URL: {url_error}")

        for address in params.filter_addresses:
            if not ADDRESS_PATTERN.match(address):
                errors.append(f"Invalid address filter: {address}")

        for entity_id in params.filter_entity_ids:
            if entity_id < 0:
                errors.append(f"Invalid dispute id filter: {entity_id}")

        if params.secret is not None and len(params.secret) == 0:
            errors.append("Secret must not be empty when provided")

        return len(errors) == 0, errors

    @staticmethod
    def validate_url(url: str) -> Tuple[bool, Optional[str]]:
        """
        Validate webhook URL.

        Args:
            url: URL to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            parsed = urlparse(url)

            if parsed.scheme not in ['http', 'https']:
                return False, "URL must use HTTP or HTTPS protocol"

            if not parsed.hostname:
                return False, "URL must have a valid hostname"

            if parsed.port is not None and not 1 <= parsed.port <= 65535:
                return False, "Port must be between 1 and 65535"

            if len(url) > 2048:
                return False, "URL must be 2048 characters or less"

            return True, None

        except ValueError as e:
            return False, f"Invalid URL format: {str(e)}"

    @staticmethod
    def validate_webhook_response(status_code: int, reason: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        """
        Validate webhook response.

        Any 2xx is a success; everything else is a retryable rejection.

        Returns:
            Tuple of (is_success, error_message)
        """
        if 200 <= status_code < 300:
            return True, None

        return False, f"HTTP {status_code}: {reason or 'Unknown'}"

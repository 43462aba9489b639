# utils/webhook_payload.py

"""
Webhook payload parsing
Raw body -> WebhookPayload, or PayloadValidationError with per-field details
"""

import json
import logging
from typing import Union

from pydantic import ValidationError

from errors import PayloadValidationError
from schemas import WebhookPayload

logger = logging.getLogger(__name__)


def parse_webhook_payload(raw_body: Union[bytes, str]) -> WebhookPayload:
    """
    Validate a Help Scout Dynamic Content request body.

    Only ticket.id is required; unknown fields pass through untouched.

    Raises:
        PayloadValidationError: body is not JSON or does not match the schema
    """
    try:
        data = json.loads(raw_body or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadValidationError(
            "Request body is not valid JSON",
            errors=[{"field": "", "message": str(e)}],
        ) from e

    try:
        return WebhookPayload.model_validate(data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise PayloadValidationError("Webhook payload validation failed", errors=errors) from e

"""
Payload and timestamp helpers.

Structured payload columns (input, result, error, resume_payload, metadata)
are stored as JSON text. NULL columns decode to None; anything else must be
valid JSON or the read fails with PayloadDecodeError.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from taskstore.core.errors import PayloadDecodeError

__all__ = ["utc_now", "encode_payload", "decode_payload", "encode_value", "decode_value"]

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Return current UTC time in ISO8601 format."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def encode_payload(value: Any) -> Optional[str]:
    """Encode a structured payload for storage. None is stored as NULL."""
    if value is None:
        return None
    try:
        return json.dumps(value)
    except (TypeError, ValueError, RecursionError) as e:
        logger.error("Failed to encode payload: %s", e)
        raise PayloadDecodeError(f"Payload is not JSON-serializable: {e}") from e


def decode_payload(text: Optional[str], column: str = "payload") -> Any:
    """Decode a stored payload column; raises PayloadDecodeError on bad text."""
    if text is None:
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, RecursionError) as e:
        logger.error("Failed to decode %s column: %s", column, e)
        raise PayloadDecodeError(f"Malformed {column} payload: {e}") from e


def encode_value(value: Any) -> str:
    """Encode a keystore value. Strings are JSON-quoted so they round-trip."""
    try:
        return json.dumps(value)
    except (TypeError, ValueError, RecursionError) as e:
        logger.error("Failed to encode keystore value: %s", e)
        raise PayloadDecodeError(f"Keystore value is not JSON-serializable: {e}") from e


def decode_value(text: str) -> Any:
    """
    Decode a keystore value.

    Values written by other tools may be bare strings rather than JSON; those
    come back unchanged.
    """
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text
    except RecursionError as e:
        logger.error("Failed to decode keystore value: %s", e)
        raise PayloadDecodeError(f"Keystore value is nested too deeply: {e}") from e

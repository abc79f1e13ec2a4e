"""
Shared utilities for the taskstore package.

- config: environment configuration
- serialization: payload encoding and timestamps
- logging: entry-point logging setup
"""

from taskstore.utils.config import MEMORY, get_config
from taskstore.utils.serialization import decode_payload, encode_payload, utc_now

__all__ = [
    "MEMORY",
    "get_config",
    "decode_payload",
    "encode_payload",
    "utc_now",
]

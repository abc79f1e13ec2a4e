"""
Environment configuration.

Environment Variables:
    TASK_DB                 Store location (default: ./tasks.db, ":memory:" allowed)
    TASKSTORE_LOG_LEVEL     Logging level for entry points (default: INFO)
    TASKSTORE_DUMP_FORMAT   Default output format for `taskstore dump` (default: json)
"""

import os
from typing import Dict

__all__ = ["MEMORY", "get_config"]

# Location sentinel for an ephemeral, never-checkpointed store
MEMORY = ":memory:"


def get_config() -> Dict[str, str]:
    """Load configuration from environment variables."""
    return {
        "db_path": os.environ.get("TASK_DB", "./tasks.db"),
        "log_level": os.environ.get("TASKSTORE_LOG_LEVEL", "INFO").upper(),
        "dump_format": os.environ.get("TASKSTORE_DUMP_FORMAT", "json").lower(),
    }

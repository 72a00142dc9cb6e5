"""Execution ID generation and validation.

IDs are random 128-bit tokens rendered as ``exe_`` + 32 hex chars.
They double as correlation identifiers, so collisions must be practically
impossible within a process lifetime.

INVARIANT: IDs are permanent. Once generated, an ID never changes.
"""

from __future__ import annotations

import re
import secrets

EXECUTION_ID_PREFIX = "exe_"
EXECUTION_ID_PATTERN = re.compile(r"^exe_[0-9a-f]{32}$")


def generate_execution_id() -> str:
    """Return a fresh execution ID."""
    return f"{EXECUTION_ID_PREFIX}{secrets.token_hex(16)}"


def generate_correlation_id() -> str:
    """Return a fresh request/response correlation ID (no prefix)."""
    return secrets.token_hex(16)


def validate_execution_id(execution_id: str) -> bool:
    """Check whether *execution_id* has the generated ID shape."""
    return EXECUTION_ID_PATTERN.match(execution_id) is not None

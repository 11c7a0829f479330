"""Human-readable pass code generation."""

from __future__ import annotations

import secrets
import string

from summit_api.core.settings import settings

_ALPHABET = string.ascii_uppercase + string.digits
_SUFFIX_LENGTH = 5


def generate_pass_code(prefix: str | None = None) -> str:
    """Return a code such as ``ESUMMIT-2026-7K2QD``."""

    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix or settings.pass_code_prefix}-{suffix}"

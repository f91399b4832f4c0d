"""Human-readable order numbers: ``ORD-<epoch millis>-<5 base36 chars>``."""

import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"

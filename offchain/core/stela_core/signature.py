"""
Signature normalization.

Wallets return signatures as arrays, {r, s} objects, JSON strings of either,
or comma-separated strings. Everything is converted to one canonical list of
0x-hex felts on ingress so nothing downstream branches on shape.
"""

import json
from typing import Any

from .felt import to_hex


def normalize_signature(value: Any) -> list[str]:
    """
    Convert any accepted signature shape into [r, s, ...] hex felts.

    Raises:
        ValueError: if the signature is empty or has an unknown shape
    """
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("[", "{")):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid signature JSON: {e}") from e
        else:
            value = [part for part in text.split(",") if part.strip()]

    if isinstance(value, dict):
        if "r" not in value or "s" not in value:
            raise ValueError("Signature object requires r and s")
        value = [value["r"], value["s"]]

    if not isinstance(value, (list, tuple)) or not value:
        raise ValueError("Signature must be a non-empty array")

    return [to_hex(part.strip() if isinstance(part, str) else part) for part in value]


def signature_to_json(signature: list[str]) -> str:
    return json.dumps(signature)


def signature_from_json(text: str) -> list[str]:
    """Stored JSON back to the canonical list."""
    return normalize_signature(text)

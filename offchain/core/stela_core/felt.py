"""
Felt, u256 and address helpers.

StarkNet encodes u256 values as two consecutive felts (low 128 bits first),
and addresses as felts that are conventionally shown zero-padded to 64 hex
digits. Values coming from RPC responses, event keys and JSON bodies may be
hex strings, decimal strings or ints; everything here accepts all three.
"""

from typing import Union

from web3 import Web3

from .constants import U128_MAX, U256_MAX

Felt = Union[int, str]

MASK_250 = 2**250 - 1


def to_int(value: Felt) -> int:
    """
    Parse a felt-like value into an int.

    Accepts ints, 0x-prefixed hex strings and decimal strings.

    Raises:
        ValueError: if the value cannot be parsed or is negative
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            result = int(text, 16)
        elif text.isdigit():
            result = int(text)
        else:
            raise ValueError(f"Not a felt: {value!r}")
    else:
        raise ValueError(f"Not a felt: {value!r}")

    if result < 0:
        raise ValueError(f"Negative felt: {value!r}")
    return result


def to_hex(value: Felt) -> str:
    """Felt to minimal 0x hex."""
    return hex(to_int(value))


def pad_address(value: Felt) -> str:
    """Felt to lowercase 0x-prefixed, 64-hex-digit address."""
    return "0x" + format(to_int(value), "064x")


def is_zero(value: Felt) -> bool:
    try:
        return to_int(value) == 0
    except ValueError:
        return False


def to_u256(value: Felt) -> tuple[int, int]:
    """Split a u256 into (low, high) 128-bit halves."""
    number = to_int(value)
    if number > U256_MAX:
        raise ValueError(f"Value exceeds u256: {number}")
    return number & U128_MAX, number >> 128


def from_u256(low: Felt, high: Felt) -> int:
    """
    Reassemble a u256 from its (low, high) halves.

    Raises:
        ValueError: if either half does not fit in 128 bits
    """
    low_int = to_int(low)
    high_int = to_int(high)
    if low_int > U128_MAX or high_int > U128_MAX:
        raise ValueError(f"u256 half out of range: low={low_int:#x} high={high_int:#x}")
    return (high_int << 128) | low_int


def inscription_id_to_hex(low: Felt, high: Felt) -> str:
    """Canonical inscription id: 0x + 64 lowercase hex digits."""
    return "0x" + format(from_u256(low, high), "064x")


def normalize_inscription_id(value: Felt) -> str:
    number = to_int(value)
    if number > U256_MAX:
        raise ValueError(f"Inscription id exceeds u256: {value!r}")
    return "0x" + format(number, "064x")


def encode_shortstring(text: str) -> int:
    """
    Encode an ASCII string of at most 31 characters as a felt.

    Example:
        >>> hex(encode_shortstring("SN_SEPOLIA"))
        '0x534e5f5345504f4c4941'
    """
    if len(text) > 31:
        raise ValueError(f"Short string too long: {text!r}")
    try:
        raw = text.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValueError(f"Short string must be ASCII: {text!r}") from e
    return int.from_bytes(raw, "big")


def decode_shortstring(value: Felt) -> str:
    number = to_int(value)
    raw = number.to_bytes((number.bit_length() + 7) // 8, "big")
    return raw.decode("ascii")


def starknet_keccak(data: bytes) -> int:
    """Keccak-256 truncated to 250 bits, as used for StarkNet selectors."""
    return int.from_bytes(Web3.keccak(data), "big") & MASK_250


def get_selector_from_name(name: str) -> int:
    """Entrypoint / event selector for a Cairo function or event name."""
    return starknet_keccak(name.encode("ascii"))

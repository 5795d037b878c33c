# ==============================================================================
# Experiment Hashing and Bucket Assignment
# ==============================================================================
"""
Deterministic string -> bucket mapping and weighted variant selection.

The arithmetic here is shared with the browser tracker, so it has to match it
bit for bit:

    acc = 0
    for each UTF-16 code unit c of the input:
        acc = int32((acc << 5) - acc + c)
    bucket = abs(acc) % 100

`int32` is two's-complement wraparound, not saturation. Iterating UTF-16 code
units (rather than Python code points) keeps characters outside the BMP
hashing the same way a JavaScript client hashes them.
"""

from collections.abc import Sequence

from siteanalytics.core.models import Variant

BUCKET_COUNT = 100
TOTAL_WEIGHT = 100

_UINT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def to_int32(value: int) -> int:
    """Wrap an arbitrary integer into the signed 32-bit range."""
    value &= _UINT32_MASK
    if value & _INT32_SIGN:
        value -= 1 << 32
    return value


def _utf16_code_units(value: str):
    encoded = value.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(encoded), 2):
        yield encoded[i] | (encoded[i + 1] << 8)


def string_hash(value: str) -> int:
    """Signed 32-bit accumulator over the string's UTF-16 code units."""
    acc = 0
    for code in _utf16_code_units(value):
        acc = to_int32((acc << 5) - acc + code)
    return acc


def bucket_for(value: str) -> int:
    """Map a string to a bucket in [0, 99]."""
    return abs(string_hash(value)) % BUCKET_COUNT


def bucket_for_user(experiment: str, user_id: str | None) -> int:
    """
    Bucket for `<experiment>.<user>`, the input used for variant assignment.

    A missing user is rendered as `null`, the same string a browser client
    produces when it concatenates a null id, so both sides agree.
    """
    return bucket_for(f"{experiment}.{'null' if user_id is None else user_id}")


def assign_variant(bucket: int, variants: Sequence[Variant]) -> str:
    """
    Pick the first variant whose cumulative weight exceeds the bucket.

    Falls back to the first variant when the weights never exceed it
    (e.g. weights summing to less than 100).
    """
    if not variants:
        raise ValueError("At least one variant is required")

    cumulative = 0
    for variant in variants:
        cumulative += variant.weight
        if bucket < cumulative:
            return variant.key
    return variants[0].key


def inline_variants(keys: Sequence[str]) -> list[Variant]:
    """Equal weights for an inline key list; the remainder goes to the first key."""
    if not keys:
        raise ValueError("At least one variant key is required")

    weight = TOTAL_WEIGHT // len(keys)
    remainder = TOTAL_WEIGHT - weight * len(keys)
    return [
        Variant(key=key, weight=weight + (remainder if index == 0 else 0))
        for index, key in enumerate(keys)
    ]

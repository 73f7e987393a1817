# app/services/checkout_metadata.py
"""
Encoding of checkout context into processor session metadata.

Stripe metadata is a flat str -> str map: at most 50 keys, keys up to 40
characters, values up to 500 characters. The ordered product id list is
comma-joined (UUIDs never contain commas) and split across numbered keys
product_ids_0, product_ids_1, ... so long carts stay within the value
ceiling.
"""

import re
import uuid
from dataclasses import dataclass

SHOPPER_KEY = "shopper_id"
ADDRESS_KEY = "address_id"
PRODUCT_IDS_PREFIX = "product_ids_"
DELIMITER = ","

MAX_KEYS = 50
MAX_VALUE_LENGTH = 500

_PRODUCT_KEY_RE = re.compile(rf"^{PRODUCT_IDS_PREFIX}(\d+)$")


class MetadataTooLarge(ValueError):
    """The product list does not fit into the processor's metadata."""


@dataclass(frozen=True)
class CheckoutMetadata:
    shopper_id: uuid.UUID
    address_id: uuid.UUID
    product_ids: list[uuid.UUID]


def encode(
    shopper_id: uuid.UUID,
    address_id: uuid.UUID,
    product_ids: list[uuid.UUID],
) -> dict[str, str]:
    metadata = {
        SHOPPER_KEY: str(shopper_id),
        ADDRESS_KEY: str(address_id),
    }

    chunks: list[str] = []
    current: list[str] = []
    for pid in product_ids:
        candidate = DELIMITER.join(current + [str(pid)])
        if current and len(candidate) > MAX_VALUE_LENGTH:
            chunks.append(DELIMITER.join(current))
            current = [str(pid)]
        else:
            current.append(str(pid))
    if current:
        chunks.append(DELIMITER.join(current))

    if len(metadata) + len(chunks) > MAX_KEYS:
        raise MetadataTooLarge(
            f"{len(product_ids)} products do not fit into checkout metadata"
        )

    for index, chunk in enumerate(chunks):
        metadata[f"{PRODUCT_IDS_PREFIX}{index}"] = chunk
    return metadata


def decode(metadata: dict[str, str] | None) -> CheckoutMetadata | None:
    """
    Inverse of encode(). Returns None when the metadata is not ours or is
    incomplete: missing/invalid shopper or address id, or no product ids.
    """
    if not metadata:
        return None

    try:
        shopper_id = uuid.UUID(metadata[SHOPPER_KEY])
        address_id = uuid.UUID(metadata[ADDRESS_KEY])
    except (KeyError, TypeError, ValueError):
        return None

    numbered = []
    for key, value in metadata.items():
        match = _PRODUCT_KEY_RE.match(key)
        if match:
            numbered.append((int(match.group(1)), value))
    numbered.sort()

    product_ids: list[uuid.UUID] = []
    try:
        for _, value in numbered:
            product_ids.extend(
                uuid.UUID(part) for part in value.split(DELIMITER) if part.strip()
            )
    except ValueError:
        return None

    if not product_ids:
        return None

    return CheckoutMetadata(
        shopper_id=shopper_id,
        address_id=address_id,
        product_ids=product_ids,
    )

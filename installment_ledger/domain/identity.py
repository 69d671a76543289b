"""Content identities for installment purchases and their payments.

Identities are SHA-256 hex digests (64 chars) so they fit the fixed-width
identity columns no matter how often a group identity gets salted.
"""

import hashlib
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

IDENTITY_LENGTH = 64


def _digest(*parts: object) -> str:
    payload = "|".join(str(p) for p in parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def group_identity(
    normalized_business_name: str,
    total_purchase_sum: Union[Decimal, int, float],
    total_payment_count: int,
    deal_date: date,
) -> str:
    """
    Identity shared by all payments of one purchase.

    Independent of the card, so a plan moved to a replacement card keeps
    its identity. The sum is rendered with two decimals before hashing.
    """
    total = Decimal(str(total_purchase_sum)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return _digest(normalized_business_name, f"{total:.2f}", total_payment_count, deal_date.isoformat())


def payment_identity(group_identity_value: str, index: int) -> str:
    """Idempotency key for payment `index` within a group"""
    return _digest(group_identity_value, index)


def salted_identity(base_group_identity: str) -> str:
    """Fresh identity for a twin purchase whose base identity is taken"""
    return _digest(base_group_identity, uuid.uuid4().hex)

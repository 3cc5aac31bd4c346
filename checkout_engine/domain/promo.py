"""Promo code rules.

Codes map deterministically to a discount fraction. Matching ignores case
and surrounding whitespace.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

PROMO_PREFIX = "TIXMOJO"
PROMO_PREFIX_DISCOUNT = Decimal("0.10")
WELCOME_CODE = "WELCOME"
WELCOME_DISCOUNT = Decimal("0.15")

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PromoEvaluation:
    is_valid: bool
    discount: Decimal
    message: str


def evaluate_promo_code(code: str | None) -> PromoEvaluation:
    normalized = (code or "").strip().upper()

    if not normalized:
        return PromoEvaluation(False, Decimal("0"), "Please enter a promo code")
    if normalized.startswith(PROMO_PREFIX):
        return PromoEvaluation(True, PROMO_PREFIX_DISCOUNT, "Promo code applied: 10% discount")
    if normalized == WELCOME_CODE:
        return PromoEvaluation(True, WELCOME_DISCOUNT, "Promo code applied: 15% discount")
    return PromoEvaluation(False, Decimal("0"), "Invalid promo code")


def apply_discount(total: Decimal, discount: Decimal) -> Decimal:
    return (total * (Decimal("1") - discount)).quantize(_CENTS, rounding=ROUND_HALF_UP)

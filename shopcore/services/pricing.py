"""Pricing engine.

Pure functions only: no database, no HTTP. Every amount is an integer in
minor currency units; fractional results are rounded half-up once, at the
point they are produced.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Iterable, Mapping

from shopcore.domain.errors import InvalidQuantityError, InvalidShippingMethodError, ValidationError
from shopcore.domain.types import Coupon, FixedCoupon, PercentageCoupon, PriceLine
from shopcore.utils import settings


def _parse_rates(raw: str) -> dict[str, int]:
    rates = {}
    for part in raw.split(","):
        if not part.strip():
            continue
        method, fee = part.split(":")
        rates[method.strip()] = int(fee)
    return rates


@dataclass(frozen=True)
class PricingConfig:
    shipping_rates: Mapping[str, int] = field(default_factory=lambda: {"standard": 0})
    free_shipping_threshold: int | None = None
    tax_rate: Decimal = Decimal("0")
    point_value: int = 1
    points_earn_rate: Decimal = Decimal("0")
    currency: str = "TWD"

    @classmethod
    def from_settings(cls) -> "PricingConfig":
        return cls(
            shipping_rates=_parse_rates(settings.SHIPPING_RATES),
            free_shipping_threshold=settings.FREE_SHIPPING_THRESHOLD,
            tax_rate=Decimal(settings.TAX_RATE),
            point_value=settings.POINT_VALUE,
            points_earn_rate=Decimal(settings.POINTS_EARN_RATE),
            currency=settings.CURRENCY,
        )


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: int
    shipping_fee: int
    tax: int
    discount: int
    points_value: int
    total: int
    points_earned: int = 0


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def subtotal_of(lines: Iterable[PriceLine]) -> int:
    total = 0
    for line in lines:
        if line.quantity <= 0:
            raise InvalidQuantityError(line.quantity)
        total += line.unit_price * line.quantity
    return total


def shipping_fee_for(method: str, subtotal: int, config: PricingConfig) -> int:
    """Flat rate per method, waived entirely from the free-shipping threshold on."""
    if method not in config.shipping_rates:
        raise InvalidShippingMethodError(method, sorted(config.shipping_rates))
    threshold = config.free_shipping_threshold
    if threshold is not None and subtotal >= threshold:
        return 0
    return config.shipping_rates[method]


def discount_for(coupon: Coupon | None, subtotal: int) -> int:
    if coupon is None or subtotal <= 0:
        return 0
    if isinstance(coupon, FixedCoupon):
        return min(coupon.value, subtotal)
    if isinstance(coupon, PercentageCoupon):
        amount = _round(Decimal(subtotal) * Decimal(str(coupon.value)) / Decimal(100))
        if coupon.max_discount is not None:
            amount = min(amount, coupon.max_discount)
        return min(amount, subtotal)
    raise TypeError(f"Unsupported coupon: {coupon!r}")


def tax_for(subtotal: int, config: PricingConfig) -> int:
    return _round(Decimal(subtotal) * config.tax_rate)


def calculate_totals(
    lines: Iterable[PriceLine],
    shipping_method: str,
    coupon: Coupon | None = None,
    points_used: int = 0,
    config: PricingConfig | None = None,
) -> PriceBreakdown:
    """
    total = subtotal + tax + shipping - discount - points value, never below 0.
    Whether the member owns ``points_used`` points is the caller's problem.
    """
    config = config or PricingConfig()
    if points_used < 0:
        raise ValidationError("points_used cannot be negative", {"points_used": points_used})

    subtotal = subtotal_of(lines)
    shipping_fee = shipping_fee_for(shipping_method, subtotal, config)
    tax = tax_for(subtotal, config)
    discount = discount_for(coupon, subtotal)
    points_value = points_used * config.point_value

    total = max(0, subtotal + tax + shipping_fee - discount - points_value)
    points_earned = int((Decimal(total) * config.points_earn_rate).to_integral_value(rounding=ROUND_FLOOR))

    return PriceBreakdown(
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        tax=tax,
        discount=discount,
        points_value=points_value,
        total=total,
        points_earned=points_earned,
    )

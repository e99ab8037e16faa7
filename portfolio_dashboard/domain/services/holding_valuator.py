"""
HOLDING VALUATOR
Value a single holding against a fresh quote

RESPONSIBILITIES:
- Compute investment, present value, gain/loss and percentage return
- Mark holdings without a usable quote as skipped

RULES:
❌ No fetching, no aggregation
❌ Never value at zero or at a stale price
✅ Decimal arithmetic, money quantized to 2 places
✅ Pure function of its inputs
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from portfolio_dashboard.domain.models import (
    FetchFailure,
    HoldingStatic,
    Quote,
    SkippedHolding,
    ValuedHolding,
)

logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value) -> Decimal:
    """Quantize a monetary amount to 2 fractional digits."""
    return Decimal(str(value)).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole × 100, or 0 when whole is not positive."""
    if whole <= 0:
        return Decimal("0")
    return part / whole * HUNDRED


class HoldingValuator:
    """
    Holding Valuator
    Combines static holding data with a quote into a ValuedHolding
    """

    def value(
        self,
        holding: HoldingStatic,
        quote: Union[Quote, FetchFailure],
    ) -> Union[ValuedHolding, SkippedHolding]:
        """
        Value one holding.

        Args:
            holding: Static holding definition
            quote: Fresh quote for the holding's symbol, or the fetch failure

        Returns:
            ValuedHolding on success, SkippedHolding when no usable price exists
        """
        if isinstance(quote, FetchFailure):
            logger.debug("Skipping %s: %s", holding.symbol, quote.reason)
            return SkippedHolding(holding=holding, reason=quote.reason)

        if quote.price is None or not quote.price.is_finite() or quote.price <= 0:
            logger.warning("Unusable price %s for %s, skipping", quote.price, holding.symbol)
            return SkippedHolding(holding=holding, reason=f"invalid price {quote.price}")

        investment = to_money(holding.purchase_price * holding.quantity)
        present_value = to_money(quote.price * holding.quantity)
        gain_loss = present_value - investment

        return ValuedHolding(
            holding=holding,
            quote=quote,
            investment=investment,
            present_value=present_value,
            gain_loss=gain_loss,
            percentage=percent_of(gain_loss, investment),
        )

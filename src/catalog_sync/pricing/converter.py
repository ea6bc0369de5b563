"""Price conversion from the vendor currency to the store currency.

The core rule is a pure function:

    amount_out = round(amount * rate * (1 + markup_percent / 100), precision)

PriceConverter wraps it with an exchange-rate provider, a cached rate and
the storefront rounding modes (ceil, .99 endings, nearest 5 or 10).
"""

import logging
import math
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from ..api.exceptions import ExchangeRateError, InvalidPriceError

logger = logging.getLogger(__name__)

CURRENCY_PRECISION = 2


class RoundingMode(str, Enum):
    """Storefront price rounding applied after conversion."""

    NONE = "none"
    CEIL = "ceil"
    NINETY_NINE = "99"
    NEAREST_5 = "nearest5"
    NEAREST_10 = "nearest10"


def _round_half_up(value: float, precision: int) -> float:
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def convert_price(
    amount: float,
    rate: float,
    markup_percent: float,
    precision: int = CURRENCY_PRECISION,
) -> float:
    """Convert a source-currency amount to the target currency.

    Args:
        amount: Price in the source currency
        rate: Exchange rate source -> target
        markup_percent: Markup applied after conversion (20 means +20%)
        precision: Decimal places of the target currency

    Returns:
        Converted price rounded half-up to ``precision`` places

    Raises:
        InvalidPriceError: If amount is negative or not finite, or the rate
            is negative or not finite
    """
    if not math.isfinite(amount):
        raise InvalidPriceError("Price must be a finite number", value=amount)
    if amount < 0:
        raise InvalidPriceError("Price cannot be negative", value=amount)
    if not math.isfinite(rate) or rate < 0:
        raise InvalidPriceError("Exchange rate must be a finite, non-negative number", value=rate)

    if amount == 0:
        return 0.0

    converted = amount * rate * (1 + markup_percent / 100)
    return _round_half_up(converted, precision)


def apply_rounding(price: float, mode: RoundingMode) -> float:
    """Apply a storefront rounding mode to an already converted price."""
    if mode == RoundingMode.CEIL:
        return float(math.ceil(price))
    if mode == RoundingMode.NINETY_NINE:
        return math.floor(price) + 0.99
    if mode == RoundingMode.NEAREST_5:
        return float(math.ceil(price / 5) * 5)
    if mode == RoundingMode.NEAREST_10:
        return float(math.ceil(price / 10) * 10)
    return price


class ExchangeRateProvider(ABC):
    """Source of exchange rates between two currency codes."""

    @abstractmethod
    def get_rate(self, source: str, target: str) -> float:
        """Return the rate that converts one unit of source into target.

        Raises:
            ExchangeRateError: If no rate is known for the pair
        """
        ...


class FixedExchangeRateProvider(ExchangeRateProvider):
    """Exchange rates from a static table such as ``{"EUR_RON": 4.97}``.

    The reverse pair is derived as 1/rate; the same currency is always 1.0.
    """

    def __init__(self, rates: dict[str, float]):
        self.rates = {key.upper(): float(value) for key, value in rates.items()}

    def get_rate(self, source: str, target: str) -> float:
        source = source.upper()
        target = target.upper()

        if source == target:
            return 1.0

        direct = self.rates.get(f"{source}_{target}")
        if direct is not None:
            return direct

        reverse = self.rates.get(f"{target}_{source}")
        if reverse:
            return 1.0 / reverse

        raise ExchangeRateError(source, target)

    def set_rate(self, source: str, target: str, rate: float) -> None:
        self.rates[f"{source.upper()}_{target.upper()}"] = float(rate)


class PriceConverter:
    """Converts vendor prices using a rate provider, markup and rounding mode.

    The exchange rate is fetched once and cached for the lifetime of the
    converter; call clear_rate_cache() to pick up a new rate.

    Example:
        converter = PriceConverter(
            FixedExchangeRateProvider({"EUR_RON": 4.97}),
            source_currency="EUR",
            target_currency="RON",
            markup_percent=20,
        )
        converter.convert(100)  # 596.4
    """

    def __init__(
        self,
        rate_provider: ExchangeRateProvider,
        source_currency: str,
        target_currency: str,
        markup_percent: float = 0.0,
        rounding_mode: RoundingMode = RoundingMode.NONE,
    ):
        self.rate_provider = rate_provider
        self.source_currency = source_currency.upper()
        self.target_currency = target_currency.upper()
        self.markup_percent = markup_percent
        self.rounding_mode = RoundingMode(rounding_mode)
        self._cached_rate: float | None = None

    @property
    def rate(self) -> float:
        """Exchange rate for the configured currency pair (cached)."""
        if self._cached_rate is None:
            self._cached_rate = self.rate_provider.get_rate(
                self.source_currency,
                self.target_currency,
            )
            logger.debug(
                f"Using exchange rate {self.source_currency}->{self.target_currency}: "
                f"{self._cached_rate}"
            )
        return self._cached_rate

    def clear_rate_cache(self) -> None:
        self._cached_rate = None

    def convert(self, amount: float) -> float:
        """Convert a single price and apply the rounding mode."""
        converted = convert_price(float(amount), self.rate, self.markup_percent)
        if converted == 0:
            return 0.0
        return apply_rounding(converted, self.rounding_mode)

    def convert_batch(self, amounts: list[float]) -> list[float]:
        return [self.convert(amount) for amount in amounts]

    @staticmethod
    def format_price(price: float) -> str:
        """Format a price the way the store expects it ("596.40")."""
        return f"{price:.2f}"

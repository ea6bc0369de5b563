"""Pricing - currency conversion and storefront rounding."""

from .converter import (
    CURRENCY_PRECISION,
    ExchangeRateProvider,
    FixedExchangeRateProvider,
    PriceConverter,
    RoundingMode,
    apply_rounding,
    convert_price,
)

__all__ = [
    "CURRENCY_PRECISION",
    "ExchangeRateProvider",
    "FixedExchangeRateProvider",
    "PriceConverter",
    "RoundingMode",
    "apply_rounding",
    "convert_price",
]

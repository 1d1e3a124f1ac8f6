"""
Units: централизованный модуль конверсии единиц протокола

Единственный допустимый способ преобразований между:
- weight: D27{tok/BU} ↔ wholeTok/wholeBU
- price: D27{nanoUSD/tok} ↔ USD/wholeTok
- limit: D18{BU/share} ↔ wholeBU/wholeShare
- assets: D18{tok/share} и балансы в базовых единицах ↔ wholeTok
- supply: D18{share} ↔ wholeShare

ЗАПРЕЩЕНО смешивать единицы без явного конвертера из этого модуля.

Все функции возвращают Decimal (направление "в whole") либо int
(направление "в on-chain"), усечённый к нулю.
"""

from decimal import Decimal
from typing import Final

from src.core.math.fixed_point import (
    D9_DEC,
    D18,
    D18_DEC,
    D27_DEC,
    Numeric,
    decimal_scale,
    from_scaled_int,
    to_decimal,
    to_scaled_int,
    with_precision,
)

# =============================================================================
# МАСШТАБЫ
# =============================================================================

# D27{nanoUSD/tok} = USD/wholeTok * NANO_USD_PER_USD * D27 / 10**decimals
NANO_USD_PER_USD: Final[Decimal] = D9_DEC


# =============================================================================
# SUPPLY / BALANCES
# =============================================================================


@with_precision
def supply_to_whole(supply: int) -> Decimal:
    """
    D18{share} → wholeShare

    Args:
        supply: Supply в D18

    Returns:
        Количество целых shares
    """
    return from_scaled_int(supply, D18)


@with_precision
def balance_to_whole(balance: int, decimals: int) -> Decimal:
    """
    Баланс в базовых единицах токена → wholeTok

    Args:
        balance: {tok}
        decimals: Decimals токена

    Returns:
        {wholeTok}
    """
    return Decimal(balance) / decimal_scale(decimals)


@with_precision
def assets_to_whole(assets: int, decimals: int) -> Decimal:
    """
    D18{tok/share} → wholeTok/wholeShare

    Актив на одну share (toAssets(1e18)): деление на 10**decimals
    переводит базовые единицы в whole, D18 share уже соответствует
    одной whole share.
    """
    return Decimal(assets) / decimal_scale(decimals)


# =============================================================================
# WEIGHTS
# =============================================================================


@with_precision
def weight_to_whole(weight: int, decimals: int) -> Decimal:
    """
    D27{tok/BU} → wholeTok/wholeBU

    Args:
        weight: Вес в D27
        decimals: Decimals токена

    Returns:
        weight / 10**decimals / 1e9
    """
    return Decimal(weight) / decimal_scale(decimals) / D9_DEC


@with_precision
def whole_to_weight(value: Numeric, decimals: int) -> int:
    """
    wholeTok/wholeBU → D27{tok/BU}

    Обратная к weight_to_whole(), усечение к нулю.
    """
    return to_scaled_int(to_decimal(value) * D9_DEC * decimal_scale(decimals))


# =============================================================================
# PRICES
# =============================================================================


@with_precision
def usd_to_price(price_usd: Numeric, decimals: int) -> int:
    """
    USD/wholeTok → D27{nanoUSD/tok}

    Examples:
        >>> usd_to_price(1, 6)   # $1 USDC
        1000000000000000000000000000000
        >>> usd_to_price(1, 18)  # $1 DAI
        1000000000000000000
    """
    return to_scaled_int(to_decimal(price_usd) / decimal_scale(decimals) * D27_DEC * NANO_USD_PER_USD)


@with_precision
def price_to_usd(price: int, decimals: int) -> Decimal:
    """D27{nanoUSD/tok} → USD/wholeTok"""
    return Decimal(price) * decimal_scale(decimals) / D27_DEC / NANO_USD_PER_USD


# =============================================================================
# LIMITS / D18 FRACTIONS
# =============================================================================


@with_precision
def limit_to_whole(limit: int) -> Decimal:
    """D18{BU/share} → wholeBU/wholeShare"""
    return from_scaled_int(limit, D18)


@with_precision
def whole_to_limit(value: Numeric) -> int:
    """wholeBU/wholeShare → D18{BU/share}, усечение к нулю."""
    return to_scaled_int(to_decimal(value) * D18_DEC)


@with_precision
def d18_to_fraction(value: int) -> Decimal:
    """
    D18{1} → доля [0, 1]

    Используется для долей целевой корзины.
    """
    return from_scaled_int(value, D18)


@with_precision
def fraction_to_d18(value: Numeric) -> int:
    """Доля → D18{1}, усечение к нулю."""
    return to_scaled_int(to_decimal(value) * D18_DEC)

"""
Start Rebalance: инициализация параметров ребалансировки

Вычисляет seed-запись для startRebalance(): по каждому токену диапазон
весов, ценовой диапазон и максимальный размер аукциона, плюс limits.

Режимы весов:
- NATIVE: веса {spot(1-e), spot, spot/(1-e)}, limits фиксированы {1, 1e18, 1e18}
- NATIVE + defer_weights: веса {0, max(spot, 1), 1e54}, полный диапазон
- TRACKING: веса фиксированы {spot, spot, spot}, limits
  {(1-E), 1, 1/(1-E)} * 1e18, где E = sum(targetShare * priceError)

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. 0 <= weight.low <= weight.spot <= weight.high <= 1e54
2. 0 <= price.low <= price.high <= 1e45 и price.high <= price.low * 100
3. 0 < maxAuctionSize <= 2**256 - 1
4. Любая ошибка цены < 1 (иначе деление на ноль)
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Union

from src.core.domain.rebalance import (
    PriceRange,
    RebalanceLimits,
    StartRebalanceArgs,
    TokenRebalanceParams,
    WeightControl,
    WeightRange,
)
from src.core.errors import (
    BasketErrorTooLargeError,
    InternalInvariantError,
    InvalidPriceError,
    InvalidPricesError,
    InvalidSupplyError,
    InvalidWeightsError,
    LengthMismatchError,
    MissingPriceError,
    UnsupportedModeError,
    ZeroAuctionSizeError,
)
from src.core.math.fixed_point import (
    D9_DEC,
    D18,
    D18_DEC,
    D27_DEC,
    MAX_PRICE,
    MAX_WEIGHT,
    ONE,
    UINT256_MAX,
    ZERO,
    Numeric,
    decimal_scale,
    to_decimal,
    to_scaled_int,
    with_precision,
)
from src.core.tracing import Tracer, resolve_tracer

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class StartRebalancePolicy:
    """
    Политика инициализации ребалансировки.

    Attributes:
        max_price_error: Потолок ошибки цены (политика протокола)
        max_price_ratio: Максимальное отношение price.high / price.low
        price_ratio_slack: Допустимый люфт (D27) при подрезке price.high
        max_weight: Максимальный вес D27{tok/BU}
        max_price: Максимальная цена D27{nanoUSD/tok}
        max_auction_size: Максимальный размер аукциона {tok}
    """

    max_price_error: Decimal = Decimal("0.9")
    max_price_ratio: int = 100
    price_ratio_slack: int = 100
    max_weight: int = MAX_WEIGHT
    max_price: int = MAX_PRICE
    max_auction_size: int = UINT256_MAX


DEFAULT_START_POLICY = StartRebalancePolicy()


# =============================================================================
# PER-TOKEN COMPUTATION
# =============================================================================


def _weight_range(
    token: str,
    spot_weight: Decimal,
    price_error: Decimal,
    decimals: int,
    weight_control: WeightControl,
    defer_weights: bool,
    policy: StartRebalancePolicy,
) -> WeightRange:
    """
    Диапазон весов токена D27{tok/BU}.

    Args:
        spot_weight: {wholeTok/wholeShare} целевое количество токена на share
    """
    # D27{tok/share}{wholeShare/wholeTok} = D27 * {tok/wholeTok} / {share/wholeShare}
    limit_multiplier = D27_DEC * decimal_scale(decimals) / D18_DEC

    spot = to_scaled_int(spot_weight * limit_multiplier)

    if weight_control == WeightControl.NATIVE:
        low = to_scaled_int(spot_weight * (ONE - price_error) * limit_multiplier)
        high = to_scaled_int(spot_weight / (ONE - price_error) * limit_multiplier)

        if defer_weights:
            low = 0
            # spot 0 would allow removeFromBasket() griefing
            if spot == 0:
                spot = 1
            high = policy.max_weight
    else:
        low = high = spot

    if low < 0 or low > spot or spot > high or high > policy.max_weight:
        raise InvalidWeightsError(f"invalid weights for token {token}")

    return WeightRange(low=low, spot=spot, high=high)


def _price_range(
    token: str,
    price: Decimal,
    price_error: Decimal,
    decimals: int,
    policy: StartRebalancePolicy,
) -> PriceRange:
    """Ценовой диапазон токена D27{nanoUSD/tok}."""
    # D27{wholeTok/tok} = D27 / {tok/wholeTok}
    price_multiplier = D27_DEC / decimal_scale(decimals)

    # D27{nanoUSD/tok} = {USD/wholeTok} * {1} * D27{wholeTok/tok} * {nanoUSD/USD}
    low = to_scaled_int(price * (ONE - price_error) * price_multiplier * D9_DEC)
    high = to_scaled_int(price / (ONE - price_error) * price_multiplier * D9_DEC) + 1

    if low < 0 or low > high or high > policy.max_price:
        raise InvalidPricesError(f"invalid prices for token {token}: low: {low}, high: {high}")

    # floor rounding of low can push the ratio slightly above the maximum
    max_high = low * policy.max_price_ratio
    if high > max_high:
        if high > max_high + policy.price_ratio_slack:
            raise InternalInvariantError()
        high = max_high

    return PriceRange(low=low, high=high)


def _max_auction_size(
    token: str,
    max_auction_size_usd: Decimal,
    price: Decimal,
    decimals: int,
    policy: StartRebalancePolicy,
) -> int:
    # {tok} = {USD} * {tok/wholeTok} / {USD/wholeTok}
    size = to_scaled_int(max_auction_size_usd * decimal_scale(decimals) / price)
    if size <= 0:
        raise ZeroAuctionSizeError(f"maxAuctionSize for token {token} is 0")
    return min(size, policy.max_auction_size)


def _rebalance_limits(
    target_basket: Sequence[Decimal],
    price_errors: Sequence[Decimal],
    weight_control: WeightControl,
) -> RebalanceLimits:
    """
    Limits D18{BU/share}.

    Raises:
        BasketErrorTooLargeError: Если sum(targetShare * priceError) >= 1
    """
    basket_error = sum((share * err for share, err in zip(target_basket, price_errors)), ZERO)
    if basket_error >= ONE:
        raise BasketErrorTooLargeError(basket_error)

    if weight_control == WeightControl.NATIVE:
        return RebalanceLimits(low=1, spot=D18, high=D18)

    return RebalanceLimits(
        low=to_scaled_int((ONE - basket_error) * D18_DEC),
        spot=D18,
        high=to_scaled_int(ONE / (ONE - basket_error) * D18_DEC),
    )


# =============================================================================
# ENTRY POINT
# =============================================================================


@with_precision
def initialize_rebalance(
    supply: int,
    tokens: Sequence[str],
    balances: Sequence[int],
    decimals: Sequence[int],
    target_basket: Sequence[int],
    prices: Sequence[Numeric],
    price_errors: Sequence[Numeric],
    max_auction_sizes_usd: Sequence[Numeric],
    weight_control: Union[WeightControl, str],
    defer_weights: bool = False,
    *,
    policy: Optional[StartRebalancePolicy] = None,
    tracer: Optional[Tracer] = None,
) -> StartRebalanceArgs:
    """
    Аргументы для startRebalance().

    Args:
        supply: D18{share} текущий total supply
        tokens: Идентификаторы токенов корзины
        balances: {tok} текущие балансы
        decimals: Decimals токенов
        target_basket: D18{1} целевая корзина
        prices: {USD/wholeTok} цены
        price_errors: {1} ошибка цены по токену (должна превышать ошибку
            цен, используемую при открытии аукционов)
        max_auction_sizes_usd: {USD} максимальный размер аукциона по токену
        weight_control: TRACKING или NATIVE
        defer_weights: Полный диапазон весов (только NATIVE)
        policy: Политика инициализации (по умолчанию протокольная)
        tracer: Получатель диагностических событий

    Returns:
        StartRebalanceArgs: параметры токенов (in_rebalance=True) и limits

    Raises:
        LengthMismatchError: Если длины массивов различаются
        UnsupportedModeError: defer_weights для TRACKING
        MissingPriceError: Цена <= 0
        InvalidPriceError: Ошибка цены < 0, >= 1 или выше политики
        InvalidWeightsError, InvalidPricesError, ZeroAuctionSizeError,
        InternalInvariantError, BasketErrorTooLargeError
    """
    policy = policy or DEFAULT_START_POLICY
    trace = resolve_tracer(tracer)
    weight_control = WeightControl(weight_control)

    if len({
        len(tokens),
        len(balances),
        len(decimals),
        len(target_basket),
        len(prices),
        len(price_errors),
        len(max_auction_sizes_usd),
    }) != 1:
        raise LengthMismatchError()

    if defer_weights and weight_control != WeightControl.NATIVE:
        raise UnsupportedModeError("deferWeights is not supported for tracking DTFs")

    if supply <= 0:
        raise InvalidSupplyError(f"supply must be positive, got {supply}")

    trace(
        "start_rebalance.input",
        {
            "supply": supply,
            "tokens": list(tokens),
            "balances": list(balances),
            "decimals": list(decimals),
            "target_basket": list(target_basket),
            "prices": list(prices),
            "price_errors": list(price_errors),
            "max_auction_sizes_usd": list(max_auction_sizes_usd),
            "weight_control": weight_control.value,
            "defer_weights": defer_weights,
        },
    )

    # {wholeShare} = {share} / {share/wholeShare}
    supply_whole = Decimal(supply) / D18_DEC

    # {wholeTok} = {tok} / {tok/wholeTok}
    assets = [Decimal(bal) / decimal_scale(dec) for bal, dec in zip(balances, decimals)]

    # {USD/wholeTok}
    prices_dec = [to_decimal(p) for p in prices]
    for token, price in zip(tokens, prices_dec):
        if price <= 0:
            raise MissingPriceError(f"missing price for token {token}")

    # {1}
    errors_dec = [to_decimal(e) for e in price_errors]
    for err in errors_dec:
        if err < 0:
            raise InvalidPriceError(f"price error cannot be negative: {err}")
        if err >= ONE:
            raise InvalidPriceError("cannot defer prices")
        if err > to_decimal(policy.max_price_error):
            raise InvalidPriceError(f"price error > {policy.max_price_error}")

    # {1} = D18{1} / D18
    shares = [Decimal(share) / D18_DEC for share in target_basket]

    # {USD} = {wholeTok} * {USD/wholeTok}
    dtf_value = sum((asset * price for asset, price in zip(assets, prices_dec)), ZERO)

    params = []
    for i, token in enumerate(tokens):
        # {wholeTok/wholeShare} = {1} * {USD} / {USD/wholeTok} / {wholeShare}
        spot_weight = shares[i] * dtf_value / prices_dec[i] / supply_whole

        params.append(
            TokenRebalanceParams(
                token=token,
                weight=_weight_range(
                    token, spot_weight, errors_dec[i], decimals[i], weight_control, defer_weights, policy
                ),
                price=_price_range(token, prices_dec[i], errors_dec[i], decimals[i], policy),
                max_auction_size=_max_auction_size(
                    token, to_decimal(max_auction_sizes_usd[i]), prices_dec[i], decimals[i], policy
                ),
                in_rebalance=True,
            )
        )

    limits = _rebalance_limits(shares, errors_dec, weight_control)

    logger.info(
        "START_REBALANCE tokens=%d weight_control=%s defer_weights=%s limits=%s",
        len(params),
        weight_control.value,
        defer_weights,
        limits.model_dump(),
    )

    return StartRebalanceArgs(tokens=tuple(params), limits=limits)

"""
Basket Metrics: распределение корзины, целевая корзина и точность

Чистые функции над балансами, ценами и весами:
- basket_distribution(): доли стоимости текущих балансов (D18{1})
- target_basket_from_weights(): целевая корзина из исторических весов (D18{1})
- basket_accuracy(): доля стоимости, не находящаяся в surplus
- allocation_error(): 1 - доля стоимости, распределённой согласно цели
- price_ranges_to_usd(): геометрический центр ценового диапазона в USD
- eject_from_target_basket(): обнуление доли токена с перераспределением

Цены передаются в USD за целый токен ({USD/wholeTok}).
Сумма долей близка к 1e18, но не обязана быть ровно 1e18 (усечение).
"""

from decimal import Decimal
from typing import Sequence

from src.core.domain.rebalance import PriceRange, RebalanceLimits, WeightRange
from src.core.errors import InputValidationError, LengthMismatchError, MissingPriceError, PriceDataError
from src.core.math.fixed_point import (
    D9_DEC,
    D18,
    D18_DEC,
    D27,
    D27_DEC,
    ONE,
    ZERO,
    Numeric,
    decimal_scale,
    to_decimal,
    to_scaled_int,
    with_precision,
)


def _check_lengths(*arrays: Sequence) -> None:
    if len({len(a) for a in arrays}) > 1:
        raise LengthMismatchError()


def _total(values: Sequence[Decimal]) -> Decimal:
    total = sum(values, ZERO)
    if total == 0:
        raise ZeroDivisionError("total basket value is zero")
    return total


# =============================================================================
# DISTRIBUTION
# =============================================================================


@with_precision
def basket_distribution(
    balances: Sequence[int],
    prices: Sequence[Numeric],
    decimals: Sequence[int],
) -> list[int]:
    """
    Распределение стоимости корзины по токенам.

    Работает и для текущих балансов, и для исторических весов: важно лишь
    передавать цены того же момента времени.

    Args:
        balances: {tok} балансы (или исторические веса)
        prices: {USD/wholeTok} цены
        decimals: Decimals токенов

    Returns:
        D18{1} доли стоимости

    Raises:
        LengthMismatchError: Если длины массивов различаются
        ZeroDivisionError: Если суммарная стоимость равна нулю
    """
    _check_lengths(balances, prices, decimals)

    # {USD} = {tok} / {tok/wholeTok} * {USD/wholeTok}
    values = [
        Decimal(bal) / decimal_scale(dec) * to_decimal(price)
        for bal, price, dec in zip(balances, prices, decimals)
    ]
    total = _total(values)

    return [to_scaled_int(value / total * D18_DEC) for value in values]


@with_precision
def target_basket_from_weights(
    weights: Sequence[WeightRange],
    prices: Sequence[Numeric],
    decimals: Sequence[int],
) -> list[int]:
    """
    Целевая корзина из весов, зафиксированных при старте ребалансировки.

    TRACKING: передавать ТЕКУЩИЕ цены.
    NATIVE: передавать ИСТОРИЧЕСКИЕ цены (на момент старта).

    Args:
        weights: D27{tok/BU} исходные веса (используется spot)
        prices: {USD/wholeTok} цены
        decimals: Decimals токенов

    Returns:
        D18{1} целевая корзина

    Raises:
        LengthMismatchError: Если длины массивов различаются
        MissingPriceError: Если какая-либо цена <= 0
    """
    _check_lengths(weights, prices, decimals)

    values = []
    for i, (weight, price, dec) in enumerate(zip(weights, prices, decimals)):
        price_dec = to_decimal(price)
        if price_dec <= 0:
            raise MissingPriceError(f"missing price for token index {i}")

        # {USD/wholeBU} = D27{tok/BU} / {tok/wholeTok} / D9 * {USD/wholeTok}
        values.append(Decimal(weight.spot) / decimal_scale(dec) / D9_DEC * price_dec)

    total = _total(values)

    return [to_scaled_int(value / total * D18_DEC) for value in values]


# =============================================================================
# ACCURACY
# =============================================================================


@with_precision
def basket_accuracy(
    supply: int,
    balances: Sequence[int],
    prices: Sequence[Numeric],
    decimals: Sequence[int],
    weights: Sequence[WeightRange],
    limits: RebalanceLimits,
) -> float:
    """
    Насколько точно балансы отражают веса.

    Ожидаемый баланс считается в целых числах так же, как on-chain:
    expected = weight.spot * limits.spot * supply / D27 / D18 (floor).

    Args:
        supply: D18{share} текущий supply
        balances: {tok} текущие балансы
        prices: {USD/wholeTok} текущие цены
        decimals: Decimals токенов
        weights: Текущие веса ребалансировки
        limits: Текущие limits ребалансировки

    Returns:
        {1} (total - surplus) / total
    """
    _check_lengths(balances, prices, decimals, weights)

    total_value = ZERO
    surplus_value = ZERO

    for bal, price, dec, weight in zip(balances, prices, decimals, weights):
        price_dec = to_decimal(price)
        scale = decimal_scale(dec)

        # {tok} = D27{tok/BU} * D18{BU/share} * {share} / D27 / D18
        expected = weight.spot * limits.spot * supply // D27 // D18

        if bal > expected:
            surplus_value += Decimal(bal - expected) * price_dec / scale

        total_value += Decimal(bal) * price_dec / scale

    if total_value == 0:
        raise ZeroDivisionError("total basket value is zero")

    return float((total_value - surplus_value) / total_value)


@with_precision
def allocation_error(
    balances: Sequence[int],
    prices: Sequence[Numeric],
    decimals: Sequence[int],
    target_basket: Sequence[int],
) -> float:
    """
    Ошибка распределения относительно целевой корзины.

    fraction = sum(min(target_i, actual_i)) по D18 долям;
    0.0 означает точное попадание в цель.

    Returns:
        {1} 1 - fraction
    """
    _check_lengths(balances, prices, decimals, target_basket)

    actual = basket_distribution(balances, prices, decimals)
    in_place = sum(min(t, a) for t, a in zip(target_basket, actual))

    return float(ONE - Decimal(in_place) / D18_DEC)


# =============================================================================
# PRICE RANGES
# =============================================================================


@with_precision
def price_ranges_to_usd(
    price_ranges: Sequence[PriceRange],
    decimals: Sequence[int],
) -> list[float]:
    """
    Геометрический центр ценовых диапазонов в USD за целый токен.

    Для диапазона {p(1-e), p/(1-e)} геометрический центр равен p.

    Raises:
        LengthMismatchError: Если длины массивов различаются
        PriceDataError: Если граница диапазона равна нулю
    """
    _check_lengths(price_ranges, decimals)

    result = []
    for i, (price_range, dec) in enumerate(zip(price_ranges, decimals)):
        if price_range.low == 0 or price_range.high == 0:
            raise PriceDataError(f"zero price bound for token index {i}")

        # D27{nanoUSD/tok}
        mid = (Decimal(price_range.low) * Decimal(price_range.high)).sqrt()

        # {USD/wholeTok} = D27{nanoUSD/tok} * {tok/wholeTok} / D27 / D9
        result.append(float(mid * decimal_scale(dec) / D27_DEC / D9_DEC))

    return result


# =============================================================================
# EJECTION
# =============================================================================


def eject_from_target_basket(target_basket: Sequence[int], index: int) -> list[int]:
    """
    Обнуление доли токена с пропорциональным перераспределением.

    Доля выбывающего токена распределяется по остальным пропорционально
    их долям (или поровну, если все остальные доли нулевые).

    Args:
        target_basket: D18{1} целевая корзина
        index: Индекс выбывающего токена

    Returns:
        D18{1} новая корзина с нулём на позиции index

    Raises:
        InputValidationError: Если индекс вне корзины или токен единственный
    """
    if not 0 <= index < len(target_basket):
        raise InputValidationError(f"token index {index} out of range")
    if len(target_basket) < 2:
        raise InputValidationError("cannot eject the only token of the basket")

    ejected = target_basket[index]
    remainder = sum(share for i, share in enumerate(target_basket) if i != index)

    result = []
    for i, share in enumerate(target_basket):
        if i == index:
            result.append(0)
        elif remainder == 0:
            result.append(share + ejected // (len(target_basket) - 1))
        else:
            result.append(share + ejected * share // remainder)

    return result

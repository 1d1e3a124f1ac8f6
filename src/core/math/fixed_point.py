"""
Fixed Point: высокоточная десятичная арифметика и масштабированные целые

Модуль является листовой зависимостью для всех расчётов ребалансировки:
- Decimal с рабочей точностью 100 значащих цифр для всех промежуточных отношений
- Конверсия результата в масштабированное целое (D9 / D18 / D27) с усечением к нулю
- Проверка и санитизация числовых входов (цены, ошибки цен, доли)
- clamp в границы, зафиксированные on-chain

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Native float никогда не участвует в промежуточной математике
2. to_scaled_int() ошибается не более чем на одну единицу относительно
   точного рационального значения входа
3. Контекст точности локален для потока (decimal.localcontext), глобальный
   контекст интерпретатора не изменяется
"""

import functools
from decimal import (
    ROUND_DOWN,
    ROUND_HALF_EVEN,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    localcontext,
)
from typing import Callable, Final, TypeVar, Union

# =============================================================================
# ТОЧНОСТЬ И МАСШТАБЫ
# =============================================================================

# Рабочая точность (значащие цифры) для всех промежуточных вычислений
PRECISION_DIGITS: Final[int] = 100

# Контекст вычислений: деление на ноль и переполнение не маскируются
PRECISION_CONTEXT: Final[Context] = Context(
    prec=PRECISION_DIGITS,
    rounding=ROUND_HALF_EVEN,
    traps=[DivisionByZero, InvalidOperation, Overflow],
)

# Целочисленные масштабы протокола
D9: Final[int] = 10**9
D18: Final[int] = 10**18
D27: Final[int] = 10**27

# Те же масштабы в Decimal
D9_DEC: Final[Decimal] = Decimal(D9)
D18_DEC: Final[Decimal] = Decimal(D18)
D27_DEC: Final[Decimal] = Decimal(D27)

ZERO: Final[Decimal] = Decimal(0)
ONE: Final[Decimal] = Decimal(1)

# Максимальный вес токена: D27{tok/BU} * D27
MAX_WEIGHT: Final[int] = D27 * D27

# Максимальная цена: D27{nanoUSD/tok} * D18
MAX_PRICE: Final[int] = D18 * D27

# uint256 max
UINT256_MAX: Final[int] = 2**256 - 1

Numeric = Union[int, float, str, Decimal]

F = TypeVar("F", bound=Callable)


# =============================================================================
# КОНТЕКСТ ТОЧНОСТИ
# =============================================================================


def precision():
    """
    Контекст-менеджер высокой точности.

    Returns:
        decimal.localcontext с PRECISION_CONTEXT (thread-local)

    Examples:
        >>> with precision():
        ...     Decimal(1) / Decimal(3)
        Decimal('0.3333...')  # 100 значащих цифр
    """
    return localcontext(PRECISION_CONTEXT)


def with_precision(func: F) -> F:
    """Декоратор: выполнить функцию внутри контекста precision()."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with precision():
            return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


# =============================================================================
# КОНВЕРСИЯ ВХОДОВ
# =============================================================================


def to_decimal(value: Numeric) -> Decimal:
    """
    Конверсия числового входа в Decimal без потери точности.

    float конвертируется через str(), поэтому 0.9 означает ровно 0.9,
    а не двоичное приближение 0.90000000000000002220...

    Args:
        value: int, float, str или Decimal

    Returns:
        Конечный Decimal

    Raises:
        ValueError: Если значение NaN/Inf, bool или не является числом
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got bool: {value}")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a number: {value!r}") from e
    else:
        raise ValueError(f"Unsupported numeric type: {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Value must be finite, got {value!r}")

    return result


def to_scaled_int(value: Decimal) -> int:
    """
    Усечение Decimal к целому (rounding toward zero).

    Это единственная точка перехода из Decimal в целые масштабированные
    величины протокола. Вызывается только на финальном шаге вычисления.

    Args:
        value: Результат вычисления (уже умноженный на нужный масштаб)

    Returns:
        int(value), усечённый к нулю

    Examples:
        >>> to_scaled_int(Decimal("555555555555555555555555555.55"))
        555555555555555555555555555
        >>> to_scaled_int(Decimal("-1.9"))
        -1
    """
    if not value.is_finite():
        raise ValueError(f"Cannot convert non-finite value to int: {value}")
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def from_scaled_int(value: int, scale: Union[int, Decimal]) -> Decimal:
    """
    Масштабированное целое → Decimal.

    Args:
        value: Масштабированное целое (например D18{1})
        scale: Масштаб (D9, D18, D27 или 10**decimals)

    Returns:
        value / scale в высокой точности
    """
    with precision():
        return Decimal(value) / Decimal(scale)


def decimal_scale(decimals: int) -> Decimal:
    """
    Масштаб токена {tok/wholeTok} = 10**decimals.

    Raises:
        ValueError: Если decimals отрицательный
    """
    if decimals < 0:
        raise ValueError(f"decimals cannot be negative: {decimals}")
    return Decimal(10 ** int(decimals))


# =============================================================================
# UTILITIES
# =============================================================================


def clamp(value, low, high):
    """
    Ограничение значения диапазоном [low, high].

    Сначала применяется нижняя граница, затем верхняя: если low > high
    (невалидный on-chain диапазон), побеждает high.

    Examples:
        >>> clamp(5, 0, 10)
        5
        >>> clamp(-1, 0, 10)
        0
        >>> clamp(11, 0, 10)
        10
    """
    if value < low:
        value = low
    if value > high:
        value = high
    return value


def ceil_div(numerator: int, denominator: int) -> int:
    """Целочисленное деление с округлением вверх (для неотрицательных)."""
    if denominator <= 0:
        raise ValueError(f"denominator must be positive, got {denominator}")
    return -(-numerator // denominator)

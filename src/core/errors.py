"""
Иерархия исключений движка параметров ребалансировки.

Категории:
- InputValidationError: некорректные входы (длины массивов, режимы, ошибки цен)
- PriceDataError: отсутствующие или неположительные цены
- OperatorActionRequiredError: цена вышла из диапазона, зафиксированного
  при старте ребалансировки; оператор ОБЯЗАН закрыть ребалансировку
- InvariantViolationError: нарушены внутренние инварианты (логическая ошибка
  или несогласованные входы), всегда фатально
- DegeneratePriceRangeError: clamp схлопнул ненулевой ценовой диапазон в точку
- BasketErrorTooLargeError: суммарная ошибка корзины >= 1 при инициализации

Все ошибки пробрасываются синхронно вызывающему коду. Внутренних retry
и частичных результатов нет.
"""

from typing import Optional


class RebalanceError(Exception):
    """Базовый класс всех ошибок движка."""


# =============================================================================
# INPUT VALIDATION
# =============================================================================


class InputValidationError(RebalanceError, ValueError):
    """Некорректные входные данные. Исправить вход и повторить вызов."""


class LengthMismatchError(InputValidationError):
    """Длины входных массивов не совпадают."""

    def __init__(self, message: str = "length mismatch") -> None:
        super().__init__(message)


class InvalidFinalStageError(InputValidationError):
    """finalStageAt вне допустимого диапазона [0, 1]."""


class InvalidSupplyError(InputValidationError):
    """Supply (текущий или начальный) должен быть положительным."""


class UnsupportedModeError(InputValidationError):
    """Запрошенная опция не поддерживается выбранным режимом весов."""


class InvalidPriceError(InputValidationError):
    """Ошибка цены (price error) вне допустимого диапазона."""


class InvalidWeightsError(InputValidationError):
    """Вычисленный диапазон весов нарушает low <= spot <= high <= 1e54."""


class InvalidPricesError(InputValidationError):
    """Вычисленный ценовой диапазон нарушает low <= high <= max."""


class ZeroAuctionSizeError(InputValidationError):
    """Максимальный размер аукциона округлился до нуля токенов."""


# =============================================================================
# PRICE DATA
# =============================================================================


class PriceDataError(RebalanceError, ValueError):
    """Проблема ценовых данных. Обновить цены и повторить вызов."""


class MissingPriceError(PriceDataError):
    """Цена отсутствует или неположительна."""


# =============================================================================
# OPERATOR ACTION REQUIRED
# =============================================================================


class OperatorActionRequiredError(RebalanceError):
    """
    Требуется действие на уровне протокола, retry не поможет.
    """


class PriceOutOfBoundsError(OperatorActionRequiredError):
    """
    Текущая цена токена вне ценового диапазона, зафиксированного
    при старте ребалансировки.

    Текст сообщения является частью внешнего контракта и не должен меняться.
    """

    def __init__(
        self,
        token: str,
        spot_price: int,
        low: int,
        high: int,
    ) -> None:
        self.token = token
        self.spot_price = spot_price
        self.low = low
        self.high = high
        self.price_range = (low, high)
        super().__init__(
            f"spot price {spot_price} out of bounds relative to initial range "
            f"[{low}, {high}]! auction launcher MUST closeRebalance to prevent loss!"
        )


# =============================================================================
# INVARIANT VIOLATIONS
# =============================================================================


class InvariantViolationError(RebalanceError):
    """
    Нарушен внутренний инвариант. Никогда не подавляется автоматически.
    """


class InvalidTargetError(InvariantViolationError):
    """Цель раунда вне (0, 1] или ниже начальной прогрессии."""

    def __init__(self, target: object, initial_progression: Optional[object] = None) -> None:
        self.target = target
        self.initial_progression = initial_progression
        super().__init__(
            f"something has gone very wrong: target={target} "
            f"initial_progression={initial_progression}"
        )


class ValueDivergenceError(InvariantViolationError):
    """Стоимость basket unit и стоимость share расходятся более чем в 10 раз."""

    def __init__(
        self,
        message: str = "buValue and shareValue are too different, something probably went wrong",
    ) -> None:
        super().__init__(message)


class InternalInvariantError(InvariantViolationError):
    """Внутренняя коррекция вышла за допустимый люфт."""

    def __init__(self, message: str = "something has gone very wrong") -> None:
        super().__init__(message)


# =============================================================================
# RANGE / BASKET ERRORS
# =============================================================================


class DegeneratePriceRangeError(RebalanceError):
    """clamp схлопнул ценовой диапазон в точку при ненулевой ошибке цены."""

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token
        super().__init__("no price range")


class BasketErrorTooLargeError(RebalanceError, ValueError):
    """Сумма targetShare * priceError по корзине >= 1."""

    def __init__(self, basket_error: object) -> None:
        self.basket_error = basket_error
        super().__init__("basketError >= 1")

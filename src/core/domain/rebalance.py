"""
Rebalance: модели параметров ребалансировки и аукционов

Immutable Pydantic модели канонического (версионно-независимого) представления:
- WeightRange: D27{tok/BU} диапазон весов токена в basket unit
- PriceRange: D27{nanoUSD/tok} ценовой диапазон
- RebalanceLimits: D18{BU/share} диапазон количества basket units на share
- TokenRebalanceParams: параметры одного токена в ребалансировке
- RebalanceState: снимок on-chain состояния ребалансировки
- StartRebalanceArgs / OpenAuctionArgs: аргументы транзакций
- AuctionMetrics: метрики раунда для оператора

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Для всех диапазонов: 0 <= low <= spot <= high (для цен: 0 <= low <= high)
2. WeightRange.high <= 1e54
3. Все on-chain величины являются целыми, метрики являются float
"""

from enum import Enum, IntEnum

from pydantic import BaseModel, Field, model_validator

from src.core.math.fixed_point import MAX_WEIGHT, UINT256_MAX

# =============================================================================
# ENUMS
# =============================================================================


class PriceControl(IntEnum):
    """Кто может менять цены в процессе ребалансировки"""

    NONE = 0
    PARTIAL = 1
    ATOMIC_SWAP = 2


class AuctionRound(IntEnum):
    """Тип раунда аукциона"""

    EJECT = 0
    PROGRESS = 1
    FINAL = 2


class WeightControl(str, Enum):
    """
    Режим весов.

    TRACKING: веса фиксированы, ребалансировка через limits (BU/share)
    NATIVE: limits фиксированы, ребалансировка через веса (tok/BU)
    """

    TRACKING = "TRACKING"
    NATIVE = "NATIVE"


class FolioVersion(IntEnum):
    """Версия on-chain layout ребалансировки"""

    V4 = 4
    V5 = 5


# =============================================================================
# RANGES
# =============================================================================


class WeightRange(BaseModel):
    """D27{tok/BU} диапазон весов токена"""

    low: int = Field(..., ge=0, description="D27{tok/BU} минимальный вес")
    spot: int = Field(..., ge=0, description="D27{tok/BU} оценка веса")
    high: int = Field(..., ge=0, le=MAX_WEIGHT, description="D27{tok/BU} максимальный вес")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_order(self) -> "WeightRange":
        """low <= spot <= high"""
        if not (self.low <= self.spot <= self.high):
            raise ValueError(
                f"weight range out of order: low={self.low} spot={self.spot} high={self.high}"
            )
        return self


class PriceRange(BaseModel):
    """D27{nanoUSD/tok} ценовой диапазон"""

    low: int = Field(..., ge=0, description="D27{nanoUSD/tok} нижняя граница")
    high: int = Field(..., ge=0, description="D27{nanoUSD/tok} верхняя граница")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_order(self) -> "PriceRange":
        """low <= high"""
        if self.low > self.high:
            raise ValueError(f"price range out of order: low={self.low} high={self.high}")
        return self

    def contains(self, price: int) -> bool:
        return self.low <= price <= self.high


class RebalanceLimits(BaseModel):
    """D18{BU/share} диапазон количества basket units на share"""

    low: int = Field(..., ge=0, description="D18{BU/share} минимум")
    spot: int = Field(..., ge=0, description="D18{BU/share} оценка")
    high: int = Field(..., ge=0, description="D18{BU/share} максимум")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_order(self) -> "RebalanceLimits":
        """low <= spot <= high"""
        if not (self.low <= self.spot <= self.high):
            raise ValueError(
                f"limits out of order: low={self.low} spot={self.spot} high={self.high}"
            )
        return self


# =============================================================================
# REBALANCE STATE
# =============================================================================


class TokenRebalanceParams(BaseModel):
    """Параметры одного токена в ребалансировке"""

    token: str = Field(..., min_length=1, description="Адрес/идентификатор токена")
    weight: WeightRange
    price: PriceRange
    max_auction_size: int = Field(
        UINT256_MAX, ge=0, le=UINT256_MAX, description="{tok} максимальный размер аукциона"
    )
    in_rebalance: bool = True

    model_config = {"frozen": True}


class RebalanceState(BaseModel):
    """
    Снимок on-chain ребалансировки в каноническом виде.

    Версионные layout (V4/V5) приводятся к этой модели адаптером.
    """

    nonce: int = Field(..., ge=0, description="Nonce ребалансировки")
    tokens: tuple[TokenRebalanceParams, ...] = Field(..., min_length=1)
    limits: RebalanceLimits
    started_at: int = Field(0, ge=0, description="Время старта (unix seconds)")
    restricted_until: int = Field(0, ge=0, description="До этого момента только auction launcher")
    available_until: int = Field(0, ge=0, description="Срок жизни ребалансировки")
    price_control: PriceControl = PriceControl.NONE

    model_config = {"frozen": True}

    @property
    def token_ids(self) -> tuple[str, ...]:
        return tuple(t.token for t in self.tokens)

    def params_for(self, token: str) -> TokenRebalanceParams:
        """
        Параметры токена по идентификатору.

        Raises:
            KeyError: Если токен не входит в ребалансировку
        """
        for params in self.tokens:
            if params.token == token:
                return params
        raise KeyError(token)


# =============================================================================
# TRANSACTION ARGS
# =============================================================================


class StartRebalanceArgs(BaseModel):
    """Аргументы startRebalance()"""

    tokens: tuple[TokenRebalanceParams, ...]
    limits: RebalanceLimits

    model_config = {"frozen": True}


class OpenAuctionArgs(BaseModel):
    """
    Аргументы openAuction().

    Массивы tokens/new_weights/new_prices параллельны и содержат только
    токены с in_rebalance=True.
    """

    rebalance_nonce: int = Field(..., ge=0)
    tokens: tuple[str, ...]
    new_weights: tuple[WeightRange, ...]
    new_prices: tuple[PriceRange, ...]
    new_limits: RebalanceLimits

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_lengths(self) -> "OpenAuctionArgs":
        if not (len(self.tokens) == len(self.new_weights) == len(self.new_prices)):
            raise ValueError("tokens, new_weights and new_prices must be parallel arrays")
        return self


# =============================================================================
# METRICS
# =============================================================================


class AuctionMetrics(BaseModel):
    """
    Метрики раунда аукциона.

    Доли выражены в [0, 1], размеры в USD.
    """

    round: AuctionRound
    initial_progression: float = Field(..., description="Прогрессия на старте ребалансировки")
    absolute_progression: float = Field(..., description="Текущая прогрессия")
    relative_progression: float = Field(..., description="Прогрессия относительно старта")
    target: float = Field(..., description="Цель раунда (абсолютная)")
    relative_target: float = Field(..., description="Цель раунда относительно старта")
    auction_size: float = Field(..., ge=0, description="Оценка объёма аукциона (USD)")
    surplus_tokens: tuple[str, ...] = ()
    surplus_token_sizes: tuple[float, ...] = ()
    deficit_tokens: tuple[str, ...] = ()
    deficit_token_sizes: tuple[float, ...] = ()

    model_config = {"frozen": True}

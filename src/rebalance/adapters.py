"""
Version Adapter: on-chain layout V4/V5 ↔ каноническая RebalanceState

Алгоритмы движков не зависят от layout: все расчёты идут по канонической
модели (src.core.domain.rebalance), конверсия происходит только на границе.

Layout V4:
- параллельные массивы tokens / weights / initialPrices / inRebalance
- плоские timestamps startedAt / restrictedUntil / availableUntil
- без maxAuctionSize (каноническое значение: uint256 max)

Layout V5:
- массив параметров токенов {token, weight, price, maxAuctionSize, inRebalance}
- вложенные timestamps

Имена полей сырых записей совпадают с ABI (camelCase), поэтому модели
записей используют pydantic aliases.
"""

from typing import Any, ClassVar, Dict, Union

from pydantic import BaseModel, Field, model_validator

from src.core.contracts import validate_rebalance_record
from src.core.domain.rebalance import (
    FolioVersion,
    PriceControl,
    PriceRange,
    RebalanceLimits,
    RebalanceState,
    StartRebalanceArgs,
    TokenRebalanceParams,
    WeightRange,
)
from src.core.math.fixed_point import UINT256_MAX

# =============================================================================
# V4 LAYOUT
# =============================================================================


class RebalanceRecordV4(BaseModel):
    """Запись ребалансировки в layout V4."""

    version: ClassVar[FolioVersion] = FolioVersion.V4

    nonce: int = Field(..., ge=0)
    tokens: tuple[str, ...] = Field(..., min_length=1)
    weights: tuple[WeightRange, ...]
    initial_prices: tuple[PriceRange, ...] = Field(..., alias="initialPrices")
    in_rebalance: tuple[bool, ...] = Field(..., alias="inRebalance")
    limits: RebalanceLimits
    started_at: int = Field(0, ge=0, alias="startedAt")
    restricted_until: int = Field(0, ge=0, alias="restrictedUntil")
    available_until: int = Field(0, ge=0, alias="availableUntil")
    price_control: PriceControl = Field(PriceControl.NONE, alias="priceControl")

    model_config = {"frozen": True, "populate_by_name": True}

    @model_validator(mode="after")
    def validate_parallel_arrays(self) -> "RebalanceRecordV4":
        n = len(self.tokens)
        if not (len(self.weights) == len(self.initial_prices) == len(self.in_rebalance) == n):
            raise ValueError("tokens, weights, initialPrices and inRebalance must be parallel arrays")
        return self


class StartRebalanceArgsV4(BaseModel):
    """Аргументы startRebalance() в layout V4."""

    tokens: tuple[str, ...]
    weights: tuple[WeightRange, ...]
    prices: tuple[PriceRange, ...]
    limits: RebalanceLimits

    model_config = {"frozen": True}


# =============================================================================
# V5 LAYOUT
# =============================================================================


class TokenRebalanceParamsV5(BaseModel):
    """Параметры токена в layout V5."""

    token: str = Field(..., min_length=1)
    weight: WeightRange
    price: PriceRange
    max_auction_size: int = Field(..., ge=0, le=UINT256_MAX, alias="maxAuctionSize")
    in_rebalance: bool = Field(..., alias="inRebalance")

    model_config = {"frozen": True, "populate_by_name": True}


class RebalanceTimestamps(BaseModel):
    started_at: int = Field(0, ge=0, alias="startedAt")
    restricted_until: int = Field(0, ge=0, alias="restrictedUntil")
    available_until: int = Field(0, ge=0, alias="availableUntil")

    model_config = {"frozen": True, "populate_by_name": True}


class RebalanceRecordV5(BaseModel):
    """Запись ребалансировки в layout V5."""

    version: ClassVar[FolioVersion] = FolioVersion.V5

    nonce: int = Field(..., ge=0)
    price_control: PriceControl = Field(PriceControl.NONE, alias="priceControl")
    tokens: tuple[TokenRebalanceParamsV5, ...] = Field(..., min_length=1)
    limits: RebalanceLimits
    timestamps: RebalanceTimestamps = Field(default_factory=RebalanceTimestamps)

    model_config = {"frozen": True, "populate_by_name": True}


RebalanceRecord = Union[RebalanceRecordV4, RebalanceRecordV5]

_RECORD_MODELS = {
    FolioVersion.V4: RebalanceRecordV4,
    FolioVersion.V5: RebalanceRecordV5,
}


# =============================================================================
# CONVERSION
# =============================================================================


def to_canonical(record: RebalanceRecord) -> RebalanceState:
    """
    Запись версионного layout → каноническая RebalanceState.

    Raises:
        TypeError: Если тип записи не поддерживается
    """
    if isinstance(record, RebalanceRecordV4):
        tokens = tuple(
            TokenRebalanceParams(
                token=token,
                weight=weight,
                price=price,
                max_auction_size=UINT256_MAX,
                in_rebalance=in_rebalance,
            )
            for token, weight, price, in_rebalance in zip(
                record.tokens, record.weights, record.initial_prices, record.in_rebalance
            )
        )
        return RebalanceState(
            nonce=record.nonce,
            tokens=tokens,
            limits=record.limits,
            started_at=record.started_at,
            restricted_until=record.restricted_until,
            available_until=record.available_until,
            price_control=record.price_control,
        )

    if isinstance(record, RebalanceRecordV5):
        tokens = tuple(
            TokenRebalanceParams(
                token=params.token,
                weight=params.weight,
                price=params.price,
                max_auction_size=params.max_auction_size,
                in_rebalance=params.in_rebalance,
            )
            for params in record.tokens
        )
        return RebalanceState(
            nonce=record.nonce,
            tokens=tokens,
            limits=record.limits,
            started_at=record.timestamps.started_at,
            restricted_until=record.timestamps.restricted_until,
            available_until=record.timestamps.available_until,
            price_control=record.price_control,
        )

    raise TypeError(f"Unsupported rebalance record type: {type(record).__name__}")


def from_canonical(state: RebalanceState, version: FolioVersion) -> RebalanceRecord:
    """
    Каноническая RebalanceState → запись версионного layout.

    В V4 maxAuctionSize не хранится и теряется при конверсии.
    """
    version = FolioVersion(version)

    if version == FolioVersion.V4:
        return RebalanceRecordV4(
            nonce=state.nonce,
            tokens=tuple(t.token for t in state.tokens),
            weights=tuple(t.weight for t in state.tokens),
            initial_prices=tuple(t.price for t in state.tokens),
            in_rebalance=tuple(t.in_rebalance for t in state.tokens),
            limits=state.limits,
            started_at=state.started_at,
            restricted_until=state.restricted_until,
            available_until=state.available_until,
            price_control=state.price_control,
        )

    return RebalanceRecordV5(
        nonce=state.nonce,
        price_control=state.price_control,
        tokens=tuple(
            TokenRebalanceParamsV5(
                token=t.token,
                weight=t.weight,
                price=t.price,
                max_auction_size=t.max_auction_size,
                in_rebalance=t.in_rebalance,
            )
            for t in state.tokens
        ),
        limits=state.limits,
        timestamps=RebalanceTimestamps(
            started_at=state.started_at,
            restricted_until=state.restricted_until,
            available_until=state.available_until,
        ),
    )


def parse_rebalance_record(data: Dict[str, Any], version: FolioVersion) -> RebalanceState:
    """
    Сырая запись (dict из RPC/ABI decoder) → каноническая RebalanceState.

    Сначала запись проверяется JSON Schema контрактом своей версии,
    затем валидируется pydantic моделью (порядок диапазонов).

    Raises:
        jsonschema.ValidationError: Нарушен контракт layout
        pydantic.ValidationError: Нарушены инварианты диапазонов
    """
    version = FolioVersion(version)
    validate_rebalance_record(data, version)
    record = _RECORD_MODELS[version].model_validate(data)
    return to_canonical(record)


def start_rebalance_args_for_version(
    args: StartRebalanceArgs,
    version: FolioVersion,
) -> Union[StartRebalanceArgs, StartRebalanceArgsV4]:
    """Аргументы startRebalance() в layout нужной версии."""
    if FolioVersion(version) == FolioVersion.V4:
        return StartRebalanceArgsV4(
            tokens=tuple(t.token for t in args.tokens),
            weights=tuple(t.weight for t in args.tokens),
            prices=tuple(t.price for t in args.tokens),
            limits=args.limits,
        )
    return args

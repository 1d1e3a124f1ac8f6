"""Auction Policy: протокольные константы классификации раундов аукциона."""

from dataclasses import dataclass, fields
from decimal import Decimal

from src.core.math.fixed_point import to_decimal


@dataclass(frozen=True)
class AuctionPolicy:
    """Политика открытия аукционов.

    Значения по умолчанию являются константами политики протокола
    и не выводятся из математики:
    - final_round_progression: выше этой прогрессии раунд всегда FINAL
    - final_stage_margin: запас к finalStageAt при выборе PROGRESS
    - final_target_snap: цель PROGRESS выше этого порога округляется до 1
    - ejection_materiality: доля стоимости в выбывающих токенах, начиная
      с которой раунд становится EJECT
    - ejection_buffer: множитель цели EJECT (докупить на 10% больше)
    - max_value_divergence: допустимое расхождение buValue и shareValue
    - min_trade_value_usd: минимальный surplus/deficit токена для метрик

    Значения можно передавать как int/float/str, они приводятся к Decimal.
    """
    final_round_progression: Decimal = Decimal("0.99")
    final_stage_margin: Decimal = Decimal("0.02")
    final_target_snap: Decimal = Decimal("0.997")
    ejection_materiality: Decimal = Decimal("1e-5")
    ejection_buffer: Decimal = Decimal("1.1")
    max_value_divergence: Decimal = Decimal(10)
    min_trade_value_usd: Decimal = Decimal(1)

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, to_decimal(getattr(self, f.name)))

        if self.max_value_divergence < 1:
            raise ValueError(
                f"max_value_divergence must be >= 1, got {self.max_value_divergence}"
            )
        if self.ejection_buffer < 1:
            raise ValueError(f"ejection_buffer must be >= 1, got {self.ejection_buffer}")


DEFAULT_AUCTION_POLICY = AuctionPolicy()

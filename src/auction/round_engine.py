"""Auction Round Engine: параметры следующего аукциона ребалансировки.

Каждый вызов является чистой функцией текущего состояния:
(RebalanceState, supply, initialSupply, initialAssets, targetBasket,
 currentAssets, decimals, prices, priceErrors, finalStageAt)
    -> (OpenAuctionArgs, AuctionMetrics)

Раунды (не хранятся, пересчитываются на каждом вызове):
- EJECT: в корзине осталась материальная доля выбывающих токенов;
  high limits и весов удерживается на on-chain значении
- PROGRESS: промежуточная цель initial + (1 - initial) * finalStageAt
- FINAL: цель 1

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Новые limits внутри on-chain [limits.low, limits.high], spot не ниже on-chain limits.spot
2. Новые веса внутри исходного [weight.low, weight.high] токена
3. Новые цены внутри исходного [price.low, price.high] токена
4. Прогрессия не регрессирует ниже initialProgression
5. 0 < target <= 1 и target >= initialProgression
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from src.auction.config import DEFAULT_AUCTION_POLICY, AuctionPolicy
from src.core.domain.rebalance import (
    AuctionMetrics,
    AuctionRound,
    OpenAuctionArgs,
    PriceControl,
    PriceRange,
    RebalanceLimits,
    RebalanceState,
    TokenRebalanceParams,
    WeightRange,
)
from src.core.domain.units import (
    assets_to_whole,
    d18_to_fraction,
    limit_to_whole,
    supply_to_whole,
    usd_to_price,
    weight_to_whole,
    whole_to_limit,
    whole_to_weight,
)
from src.core.errors import (
    DegeneratePriceRangeError,
    InvalidFinalStageError,
    InvalidPriceError,
    InvalidSupplyError,
    InvalidTargetError,
    LengthMismatchError,
    MissingPriceError,
    PriceOutOfBoundsError,
    ValueDivergenceError,
)
from src.core.math.fixed_point import (
    D18,
    D27,
    ONE,
    ZERO,
    Numeric,
    ceil_div,
    clamp,
    decimal_scale,
    precision,
    to_decimal,
)
from src.core.tracing import Tracer, resolve_tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundClassification:
    """Результат классификации раунда.

    Все доли в Decimal, [0, 1].
    """
    round: AuctionRound
    target: Decimal
    initial_progression: Decimal
    absolute_progression: Decimal
    relative_progression: Decimal

    @property
    def delta(self) -> Decimal:
        return ONE - self.target

    @property
    def withholds_surplus(self) -> bool:
        """EJECT: high удерживается на on-chain значении."""
        return self.round == AuctionRound.EJECT


@dataclass(frozen=True)
class _Inputs:
    """Нормализованные входы (whole-единицы)."""
    supply: Decimal
    shares: list[Decimal]
    prices: list[Decimal]
    price_errors: list[Decimal]
    initial_folio: list[Decimal]
    folio: list[Decimal]
    spot_weights: list[Decimal]
    final_stage_at: Decimal


class AuctionRoundEngine:
    """Движок открытия аукционов.

    Stateless: policy и tracer задаются при создании, все остальное
    передаётся в compute_next_auction(). Экземпляр безопасно
    использовать из нескольких потоков.
    """

    def __init__(
        self,
        policy: Optional[AuctionPolicy] = None,
        tracer: Optional[Tracer] = None,
    ):
        self.policy = policy or DEFAULT_AUCTION_POLICY
        self._trace = resolve_tracer(tracer)

    def compute_next_auction(
        self,
        rebalance: RebalanceState,
        supply: int,
        initial_supply: int,
        initial_assets: Sequence[int],
        target_basket: Sequence[int],
        current_assets: Sequence[int],
        decimals: Sequence[int],
        prices: Sequence[Numeric],
        price_errors: Sequence[Numeric],
        final_stage_at: Numeric,
    ) -> tuple[OpenAuctionArgs, AuctionMetrics]:
        """Параметры следующего openAuction() и метрики раунда.

        Args:
            rebalance: Текущее on-chain состояние ребалансировки
            supply: D18{share} текущий total supply
            initial_supply: D18{share} supply на момент старта
            initial_assets: D18{tok/share} активы на share на момент старта
            target_basket: D18{1} целевая корзина
            current_assets: D18{tok/share} текущие активы на share
            decimals: Decimals токенов
            prices: {USD/wholeTok} текущие цены
            price_errors: {1} ошибка цены для этого аукциона
            final_stage_at: {1} доля пути, после которой раунд FINAL

        Returns:
            (OpenAuctionArgs, AuctionMetrics)

        Raises:
            LengthMismatchError, InvalidFinalStageError, InvalidSupplyError,
            MissingPriceError, InvalidPriceError: некорректные входы
            PriceOutOfBoundsError: оператор должен закрыть ребалансировку
            ValueDivergenceError, InvalidTargetError: нарушены инварианты
            DegeneratePriceRangeError: ценовой диапазон схлопнулся
        """
        with precision():
            inputs = self._normalize(
                rebalance,
                supply,
                initial_supply,
                initial_assets,
                target_basket,
                current_assets,
                decimals,
                prices,
                price_errors,
                final_stage_at,
            )
            return self._compute(rebalance, inputs, supply, decimals)

    # -------------------------------------------------------------------------
    # NORMALIZATION
    # -------------------------------------------------------------------------

    def _normalize(
        self,
        rebalance: RebalanceState,
        supply: int,
        initial_supply: int,
        initial_assets: Sequence[int],
        target_basket: Sequence[int],
        current_assets: Sequence[int],
        decimals: Sequence[int],
        prices: Sequence[Numeric],
        price_errors: Sequence[Numeric],
        final_stage_at: Numeric,
    ) -> _Inputs:
        tokens = rebalance.tokens
        if any(
            len(values) != len(tokens)
            for values in (initial_assets, target_basket, current_assets, decimals, prices, price_errors)
        ):
            raise LengthMismatchError()

        fsa = to_decimal(final_stage_at)
        if fsa > ONE:
            raise InvalidFinalStageError("finalStageAt must be less than 1")
        if fsa < 0:
            raise InvalidFinalStageError(f"finalStageAt cannot be negative: {fsa}")

        if supply <= 0 or initial_supply <= 0:
            raise InvalidSupplyError(f"supply must be positive: supply={supply} initial_supply={initial_supply}")

        prices_dec = []
        for params, price in zip(tokens, prices):
            price_dec = to_decimal(price)
            if price_dec <= 0:
                raise MissingPriceError(f"missing price for token {params.token}")
            prices_dec.append(price_dec)

        errors_dec = []
        for params, err in zip(tokens, price_errors):
            err_dec = to_decimal(err)
            if err_dec < 0 or err_dec >= ONE:
                raise InvalidPriceError(f"price error for token {params.token} must be in [0, 1): {err_dec}")
            errors_dec.append(err_dec)

        self._trace(
            "auction.input",
            {
                "nonce": rebalance.nonce,
                "supply": supply,
                "initial_supply": initial_supply,
                "supply_change": Decimal(supply) / Decimal(initial_supply),
                "final_stage_at": fsa,
            },
        )

        return _Inputs(
            supply=supply_to_whole(supply),
            shares=[d18_to_fraction(share) for share in target_basket],
            prices=prices_dec,
            price_errors=errors_dec,
            initial_folio=[assets_to_whole(a, dec) for a, dec in zip(initial_assets, decimals)],
            folio=[assets_to_whole(a, dec) for a, dec in zip(current_assets, decimals)],
            spot_weights=[weight_to_whole(p.weight.spot, dec) for p, dec in zip(tokens, decimals)],
            final_stage_at=fsa,
        )

    # -------------------------------------------------------------------------
    # PIPELINE
    # -------------------------------------------------------------------------

    def _compute(
        self,
        rebalance: RebalanceState,
        inputs: _Inputs,
        supply: int,
        decimals: Sequence[int],
    ) -> tuple[OpenAuctionArgs, AuctionMetrics]:
        self._check_price_bounds(rebalance, inputs, decimals)

        share_value, bu_value = self._values(rebalance, inputs)
        portion_ejected = self._portion_being_ejected(rebalance, inputs, share_value)

        # {wholeBU/wholeShare} = {USD/wholeShare} / {USD/wholeBU}
        # never below the spot limit already recorded on-chain
        spot_limit = min(
            max(share_value / bu_value, limit_to_whole(rebalance.limits.spot)),
            limit_to_whole(rebalance.limits.high),
        )

        classification = self._classify_round(
            rebalance, inputs, share_value, spot_limit, portion_ejected
        )

        new_limits = self._new_limits(rebalance.limits, spot_limit, classification)

        new_weights = [
            self._new_weight_range(params, share, price, dec, share_value, new_limits, classification)
            for params, share, price, dec in zip(rebalance.tokens, inputs.shares, inputs.prices, decimals)
        ]
        self._trace("auction.weights", {"weights": [w.model_dump() for w in new_weights]})

        new_prices = [
            self._new_price_range(params, price, err, dec, rebalance.price_control)
            for params, price, err, dec in zip(rebalance.tokens, inputs.prices, inputs.price_errors, decimals)
        ]
        self._trace("auction.prices", {"prices": [p.model_dump() for p in new_prices]})

        metrics = self._metrics(
            rebalance, inputs, supply, decimals, share_value, new_weights, new_limits, classification
        )

        selected = [i for i, params in enumerate(rebalance.tokens) if params.in_rebalance]
        args = OpenAuctionArgs(
            rebalance_nonce=rebalance.nonce,
            tokens=tuple(rebalance.tokens[i].token for i in selected),
            new_weights=tuple(new_weights[i] for i in selected),
            new_prices=tuple(new_prices[i] for i in selected),
            new_limits=new_limits,
        )

        logger.info(
            "AUCTION nonce=%s round=%s target=%.6f progression=%.6f auction_size_usd=%.2f",
            rebalance.nonce,
            metrics.round.name,
            metrics.target,
            metrics.absolute_progression,
            metrics.auction_size,
        )

        return args, metrics

    # -------------------------------------------------------------------------
    # SAFETY CHECKS
    # -------------------------------------------------------------------------

    def _check_price_bounds(
        self,
        rebalance: RebalanceState,
        inputs: _Inputs,
        decimals: Sequence[int],
    ) -> None:
        """Текущая цена каждого токена внутри диапазона, зафиксированного при старте.

        Raises:
            PriceOutOfBoundsError: ребалансировку нужно закрыть
        """
        for params, price, dec in zip(rebalance.tokens, inputs.prices, decimals):
            spot_price = usd_to_price(price, dec)
            if not params.price.contains(spot_price):
                raise PriceOutOfBoundsError(
                    params.token, spot_price, params.price.low, params.price.high
                )

    def _values(self, rebalance: RebalanceState, inputs: _Inputs) -> tuple[Decimal, Decimal]:
        """Стоимость одной share и одного basket unit (USD).

        Raises:
            ValueDivergenceError: если стоимости расходятся более чем в max_value_divergence раз
        """
        share_value = ZERO
        bu_value = ZERO
        for params, bal, weight, price in zip(
            rebalance.tokens, inputs.folio, inputs.spot_weights, inputs.prices
        ):
            if not params.in_rebalance:
                continue
            # {USD/wholeShare} = {wholeTok/wholeShare} * {USD/wholeTok}
            share_value += bal * price
            # {USD/wholeBU} = {wholeTok/wholeBU} * {USD/wholeTok}
            bu_value += weight * price

        if share_value <= 0 or bu_value <= 0:
            raise ValueDivergenceError()

        divergence = self.policy.max_value_divergence
        if share_value > bu_value * divergence or bu_value > share_value * divergence:
            raise ValueDivergenceError()

        logger.debug(
            "AUCTION_VALUES share_value=%s bu_value=%s basket_price_difference_pct=%.4f",
            share_value,
            bu_value,
            (bu_value - share_value) / share_value * 100,
        )
        self._trace("auction.values", {"share_value": share_value, "bu_value": bu_value})

        return share_value, bu_value

    def _portion_being_ejected(
        self,
        rebalance: RebalanceState,
        inputs: _Inputs,
        share_value: Decimal,
    ) -> Decimal:
        """Доля стоимости share в токенах с нулевым целевым весом."""
        ejected = ZERO
        for params, bal, price in zip(rebalance.tokens, inputs.folio, inputs.prices):
            if params.in_rebalance and params.weight.spot == 0:
                ejected += bal * price
        return ejected / share_value

    # -------------------------------------------------------------------------
    # ROUND CLASSIFICATION
    # -------------------------------------------------------------------------

    def _progression(
        self,
        rebalance: RebalanceState,
        balances: list[Decimal],
        inputs: _Inputs,
        spot_limit: Decimal,
        share_value: Decimal,
    ) -> Decimal:
        """Доля стоимости share, находящаяся в ожидаемых балансах."""
        in_basket = ZERO
        for params, bal, weight, price in zip(rebalance.tokens, balances, inputs.spot_weights, inputs.prices):
            if not params.in_rebalance:
                continue
            # {wholeTok/wholeShare} = {wholeTok/wholeBU} * {wholeBU/wholeShare}
            expected = weight * spot_limit
            in_basket += min(expected, bal) * price
        return in_basket / share_value

    def _classify_round(
        self,
        rebalance: RebalanceState,
        inputs: _Inputs,
        share_value: Decimal,
        spot_limit: Decimal,
        portion_ejected: Decimal,
    ) -> RoundClassification:
        """Выбор раунда и цели.

        Порядок: PROGRESS/FINAL по прогрессии, затем EJECT поверх.

        Raises:
            InvalidTargetError: target <= 0, target < initial или target > 1
        """
        policy = self.policy

        initial = self._progression(rebalance, inputs.initial_folio, inputs, spot_limit, share_value)
        progression = self._progression(rebalance, inputs.folio, inputs, spot_limit, share_value)

        # rounding can make progression dip below the starting point
        if progression < initial:
            progression = initial

        relative = ONE if initial == ONE else (progression - initial) / (ONE - initial)

        self._trace(
            "auction.progression",
            {
                "initial_progression": initial,
                "absolute_progression": progression,
                "relative_progression": relative,
                "portion_being_ejected": portion_ejected,
            },
        )

        round_ = AuctionRound.FINAL
        target = ONE

        if (
            progression < policy.final_round_progression
            and relative < inputs.final_stage_at - policy.final_stage_margin
        ):
            round_ = AuctionRound.PROGRESS
            target = initial + (ONE - initial) * inputs.final_stage_at

            if target >= policy.final_target_snap:
                round_ = AuctionRound.FINAL
                target = ONE

        if portion_ejected > policy.ejection_materiality:
            round_ = AuctionRound.EJECT

            # buy up to 10% more than required to finish the ejection
            ejection_target = progression + portion_ejected * policy.ejection_buffer
            if target < ejection_target < ONE:
                target = ejection_target

        if target <= 0 or target < initial or target > ONE:
            raise InvalidTargetError(target, initial)

        self._trace("auction.round", {"round": round_.name, "target": target})
        logger.debug("AUCTION_ROUND round=%s target=%s", round_.name, target)

        return RoundClassification(
            round=round_,
            target=target,
            initial_progression=initial,
            absolute_progression=progression,
            relative_progression=relative,
        )

    # -------------------------------------------------------------------------
    # LIMITS / WEIGHTS / PRICES
    # -------------------------------------------------------------------------

    def _new_limits(
        self,
        onchain: RebalanceLimits,
        spot_limit: Decimal,
        classification: RoundClassification,
    ) -> RebalanceLimits:
        """Новые limits D18{BU/share}, внутри on-chain диапазона."""
        delta = classification.delta

        low = whole_to_limit(spot_limit * (ONE - delta))
        spot = whole_to_limit(spot_limit)
        high = whole_to_limit(spot_limit * (ONE + delta))

        # surplus of non-ejected tokens is withheld while ejecting
        if classification.withholds_surplus:
            high = onchain.high

        limits = RebalanceLimits(
            low=clamp(low, onchain.low, onchain.high),
            spot=clamp(spot, onchain.low, onchain.high),
            high=clamp(high, onchain.low, onchain.high),
        )
        self._trace("auction.limits", limits.model_dump())
        return limits

    def _new_weight_range(
        self,
        params: TokenRebalanceParams,
        share: Decimal,
        price: Decimal,
        decimals: int,
        share_value: Decimal,
        limits: RebalanceLimits,
        classification: RoundClassification,
    ) -> WeightRange:
        """Новый диапазон весов D27{tok/BU}, внутри исходного диапазона токена."""
        initial = params.weight
        if not params.in_rebalance:
            return initial

        delta = classification.delta

        # {wholeBU/wholeShare}
        actual_low = limit_to_whole(limits.low)
        actual_spot = limit_to_whole(limits.spot)
        actual_high = limit_to_whole(limits.high)

        # {wholeTok/wholeBU} = {USD/wholeShare} * {1} / {wholeBU/wholeShare} / {USD/wholeTok}
        ideal = share_value * share / actual_spot / price

        # remaining delta is pushed into the weights
        if actual_low > 0:
            low = whole_to_weight(ideal * (ONE - delta) / (actual_low / actual_spot), decimals)
        else:
            low = initial.low
        spot = whole_to_weight(ideal, decimals)
        if classification.withholds_surplus:
            high = initial.high
        else:
            high = whole_to_weight(ideal * (ONE + delta) / (actual_high / actual_spot), decimals)

        low = clamp(low, initial.low, initial.high)
        spot = clamp(spot, initial.low, initial.high)
        high = clamp(high, initial.low, initial.high)

        # truncated limits can push low a few units above spot
        return WeightRange(low=min(low, spot), spot=spot, high=max(high, spot))

    def _new_price_range(
        self,
        params: TokenRebalanceParams,
        price: Decimal,
        price_error: Decimal,
        decimals: int,
        price_control: PriceControl,
    ) -> PriceRange:
        """Новый ценовой диапазон D27{nanoUSD/tok}, внутри исходного диапазона.

        Raises:
            DegeneratePriceRangeError: clamp схлопнул диапазон при ненулевой ошибке
        """
        initial = params.price
        if price_control == PriceControl.NONE:
            return initial

        low = clamp(usd_to_price(price * (ONE - price_error), decimals), initial.low, initial.high)
        high = clamp(usd_to_price(price / (ONE - price_error), decimals), initial.low, initial.high)

        if low == high and price_error > 0:
            raise DegeneratePriceRangeError(params.token)

        return PriceRange(low=low, high=high)

    # -------------------------------------------------------------------------
    # METRICS
    # -------------------------------------------------------------------------

    def _metrics(
        self,
        rebalance: RebalanceState,
        inputs: _Inputs,
        supply: int,
        decimals: Sequence[int],
        share_value: Decimal,
        new_weights: list[WeightRange],
        new_limits: RebalanceLimits,
        classification: RoundClassification,
    ) -> AuctionMetrics:
        min_value = self.policy.min_trade_value_usd

        surplus_tokens: list[str] = []
        surplus_sizes: list[Decimal] = []
        deficit_tokens: list[str] = []
        deficit_sizes: list[Decimal] = []

        for params, weight, bal, price, dec in zip(
            rebalance.tokens, new_weights, inputs.folio, inputs.prices, decimals
        ):
            if not params.in_rebalance:
                continue

            scale = decimal_scale(dec)

            # {tok} = D27{tok/BU} * D18{BU/share} * {share} / D27 / D18
            buy_up_to = weight.low * new_limits.low * supply // (D27 * D18)
            sell_down_to = ceil_div(weight.high * new_limits.high * supply, D27 * D18)

            # {tok} = {wholeTok/wholeShare} * {tok/wholeTok} * {wholeShare}
            balance = bal * scale * inputs.supply

            if balance < buy_up_to:
                # {USD} = {tok} / {tok/wholeTok} * {USD/wholeTok}
                value = (buy_up_to - balance) / scale * price
                if value >= min_value:
                    deficit_tokens.append(params.token)
                    deficit_sizes.append(value)
            elif balance > sell_down_to:
                value = (balance - sell_down_to) / scale * price
                if value >= min_value:
                    surplus_tokens.append(params.token)
                    surplus_sizes.append(value)

        auction_size = min(sum(surplus_sizes, ZERO), sum(deficit_sizes, ZERO))

        initial = classification.initial_progression
        target = classification.target

        # expected completion after this specific auction
        estimate = classification.absolute_progression + auction_size / (share_value * inputs.supply)
        target = max(target, min(ONE, estimate))

        relative_target = ONE if initial == ONE else (target - initial) / (ONE - initial)

        metrics = AuctionMetrics(
            round=classification.round,
            initial_progression=float(initial),
            absolute_progression=float(classification.absolute_progression),
            relative_progression=float(classification.relative_progression),
            target=float(target),
            relative_target=float(relative_target),
            auction_size=float(auction_size),
            surplus_tokens=tuple(surplus_tokens),
            surplus_token_sizes=tuple(float(s) for s in surplus_sizes),
            deficit_tokens=tuple(deficit_tokens),
            deficit_token_sizes=tuple(float(s) for s in deficit_sizes),
        )
        self._trace("auction.metrics", metrics.model_dump())
        return metrics


def compute_next_auction(
    rebalance: RebalanceState,
    supply: int,
    initial_supply: int,
    initial_assets: Sequence[int],
    target_basket: Sequence[int],
    current_assets: Sequence[int],
    decimals: Sequence[int],
    prices: Sequence[Numeric],
    price_errors: Sequence[Numeric],
    final_stage_at: Numeric,
    *,
    policy: Optional[AuctionPolicy] = None,
    tracer: Optional[Tracer] = None,
) -> tuple[OpenAuctionArgs, AuctionMetrics]:
    """Функциональная обёртка над AuctionRoundEngine.compute_next_auction()."""
    engine = AuctionRoundEngine(policy=policy, tracer=tracer)
    return engine.compute_next_auction(
        rebalance,
        supply,
        initial_supply,
        initial_assets,
        target_basket,
        current_assets,
        decimals,
        prices,
        price_errors,
        final_stage_at,
    )


def is_rebalance_complete(metrics: AuctionMetrics, tolerance: float = 1e-5) -> bool:
    """Условие остановки auction launcher.

    Ребалансировка завершена, если нечего выбрасывать из корзины
    и прогрессия достигла 1 с точностью tolerance.
    """
    return (
        metrics.round != AuctionRound.EJECT
        and metrics.absolute_progression >= 1 - tolerance
    )

"""
Тесты для Auction Round Engine

Эталонная ребалансировка: USDC (6), DAI (18), USDT (6), все по $1.
Старт: 1 USDC на share, цель 50% DAI / 50% USDT, ошибка цены 0.1.
Аукционы: ошибка цены 0.01, finalStageAt 0.9.

Проверяет:
1. Классификацию раундов EJECT / PROGRESS / FINAL
2. Новые limits, веса и цены (включая удержание high в EJECT)
3. Защитные проверки (цена вне диапазона, расхождение стоимостей)
4. Метрики (surplus / deficit, auctionSize, уточнение target)
"""

import pytest

from src.auction.config import AuctionPolicy
from src.auction.round_engine import AuctionRoundEngine, compute_next_auction, is_rebalance_complete
from src.core.domain.rebalance import (
    AuctionRound,
    PriceControl,
    PriceRange,
    RebalanceLimits,
    RebalanceState,
    WeightControl,
    WeightRange,
)
from src.core.errors import (
    DegeneratePriceRangeError,
    InvalidFinalStageError,
    InvalidPriceError,
    InvalidSupplyError,
    LengthMismatchError,
    MissingPriceError,
    PriceOutOfBoundsError,
    ValueDivergenceError,
)
from src.core.tracing import RecordingTracer
from src.rebalance.start_rebalance import initialize_rebalance

D18 = 10**18

TOKENS = ["USDC", "DAI", "USDT"]
DECIMALS = [6, 18, 6]
TARGET = [0, 5 * 10**17, 5 * 10**17]
PRICES = [1, 1, 1]
AUCTION_ERRORS = [0.01, 0.01, 0.01]

# D18{tok/share}
ALL_USDC = [10**6, 0, 0]
CONVERGED = [0, 5 * 10**17, 5 * 10**5]
NEAR_COMPLETE = [10**4, 495 * 10**15, 495 * 10**3]


def _rebalance(
    weight_control: WeightControl = WeightControl.NATIVE,
    price_control: PriceControl = PriceControl.PARTIAL,
) -> RebalanceState:
    args = initialize_rebalance(
        supply=D18,
        tokens=TOKENS,
        balances=[10**6, 0, 0],
        decimals=DECIMALS,
        target_basket=TARGET,
        prices=PRICES,
        price_errors=[0.1, 0.1, 0.1],
        max_auction_sizes_usd=[10**6, 10**6, 10**6],
        weight_control=weight_control,
    )
    return RebalanceState(nonce=7, tokens=args.tokens, limits=args.limits, price_control=price_control)


def _auction(rebalance: RebalanceState, current_assets, **overrides):
    kwargs = dict(
        rebalance=rebalance,
        supply=D18,
        initial_supply=D18,
        initial_assets=ALL_USDC,
        target_basket=TARGET,
        current_assets=current_assets,
        decimals=DECIMALS,
        prices=PRICES,
        price_errors=AUCTION_ERRORS,
        final_stage_at=0.9,
    )
    kwargs.update(overrides)
    return compute_next_auction(**kwargs)


def _replace_token(rebalance: RebalanceState, index: int, **update) -> RebalanceState:
    tokens = list(rebalance.tokens)
    tokens[index] = tokens[index].model_copy(update=update)
    return rebalance.model_copy(update={"tokens": tuple(tokens)})


# =============================================================================
# ROUND CLASSIFICATION
# =============================================================================


class TestFirstAuction:
    """Первый аукцион: всё в USDC, USDC выбывает"""

    def test_round_and_target(self) -> None:
        _, metrics = _auction(_rebalance(), ALL_USDC)
        assert metrics.round == AuctionRound.EJECT
        assert metrics.initial_progression == 0.0
        assert metrics.absolute_progression == 0.0
        assert metrics.relative_progression == 0.0
        assert metrics.target == pytest.approx(0.9)
        assert metrics.relative_target == pytest.approx(0.9)

    def test_tokens_and_nonce(self) -> None:
        args, _ = _auction(_rebalance(), ALL_USDC)
        assert args.rebalance_nonce == 7
        assert args.tokens == ("USDC", "DAI", "USDT")

    def test_limits_high_withheld(self) -> None:
        """EJECT: high остаётся on-chain значением"""
        args, _ = _auction(_rebalance(), ALL_USDC)
        limits = args.new_limits
        assert (limits.low, limits.spot, limits.high) == (9 * 10**17, D18, D18)

    def test_weights(self) -> None:
        args, _ = _auction(_rebalance(), ALL_USDC)
        usdc, dai, usdt = args.new_weights
        assert (usdc.low, usdc.spot, usdc.high) == (0, 0, 0)
        assert (dai.low, dai.spot, dai.high) == (5 * 10**26, 5 * 10**26, 555555555555555555555555555)
        assert (usdt.low, usdt.spot, usdt.high) == (5 * 10**14, 5 * 10**14, 555555555555555)

    def test_prices(self) -> None:
        args, _ = _auction(_rebalance(), ALL_USDC)
        usdc, dai, _ = args.new_prices
        assert usdc.low == 99 * 10**28
        assert usdc.high == 1010101010101010101010101010101
        assert dai.low == 99 * 10**16
        assert dai.high == 1010101010101010101

    def test_metrics_single_share(self) -> None:
        """При supply = 1 share дефициты ниже $1 и не попадают в метрики"""
        _, metrics = _auction(_rebalance(), ALL_USDC)
        assert metrics.surplus_tokens == ("USDC",)
        assert metrics.surplus_token_sizes == pytest.approx((1.0,))
        assert metrics.deficit_tokens == ()
        assert metrics.auction_size == 0.0

    def test_metrics_large_supply(self) -> None:
        """1000 shares: surplus $1000 USDC, дефициты $450 DAI и $450 USDT"""
        _, metrics = _auction(_rebalance(), ALL_USDC, supply=1000 * D18, initial_supply=1000 * D18)
        assert metrics.surplus_tokens == ("USDC",)
        assert metrics.surplus_token_sizes == pytest.approx((1000.0,))
        assert metrics.deficit_tokens == ("DAI", "USDT")
        assert metrics.deficit_token_sizes == pytest.approx((450.0, 450.0))
        assert metrics.auction_size == pytest.approx(900.0)
        assert metrics.target == pytest.approx(0.9)


class TestNearCompletion:
    """Почти завершённая ребалансировка с остатком USDC"""

    def test_eject_with_full_target(self) -> None:
        _, metrics = _auction(_rebalance(), NEAR_COMPLETE)
        assert metrics.round == AuctionRound.EJECT
        assert metrics.target == 1.0
        assert metrics.absolute_progression == pytest.approx(0.99)

    def test_high_withheld_when_delta_zero(self) -> None:
        """EJECT удерживает high на on-chain значении даже при target = 1"""
        args, _ = _auction(_rebalance(), NEAR_COMPLETE)
        limits = args.new_limits
        assert (limits.low, limits.spot, limits.high) == (D18, D18, D18)

        _, dai, usdt = args.new_weights
        assert (dai.low, dai.spot, dai.high) == (5 * 10**26, 5 * 10**26, 555555555555555555555555555)
        assert (usdt.low, usdt.spot, usdt.high) == (5 * 10**14, 5 * 10**14, 555555555555555)

    def test_not_complete(self) -> None:
        _, metrics = _auction(_rebalance(), NEAR_COMPLETE)
        assert not is_rebalance_complete(metrics)


class TestConverged:
    """Балансы совпадают с целью"""

    def test_final(self) -> None:
        _, metrics = _auction(_rebalance(), CONVERGED)
        assert metrics.round == AuctionRound.FINAL
        assert metrics.target == 1.0
        assert metrics.absolute_progression == pytest.approx(1.0)
        assert metrics.relative_progression == pytest.approx(1.0)
        assert metrics.auction_size == 0.0
        assert is_rebalance_complete(metrics)

    def test_initial_progression_one(self) -> None:
        """initialProgression == 1 → relative == 1"""
        _, metrics = _auction(_rebalance(), CONVERGED, initial_assets=CONVERGED)
        assert metrics.initial_progression == pytest.approx(1.0)
        assert metrics.relative_progression == 1.0
        assert metrics.relative_target == 1.0


class TestProgressRound:
    """Раунды PROGRESS и цель EJECT"""

    def test_ejection_target_adopted(self) -> None:
        """prog 0.85 + 0.1 * 1.1 = 0.96 > 0.9 → цель EJECT"""
        _, metrics = _auction(_rebalance(), [10**5, 55 * 10**16, 35 * 10**4])
        assert metrics.round == AuctionRound.EJECT
        assert metrics.absolute_progression == pytest.approx(0.85)
        assert metrics.target == pytest.approx(0.96)

    def test_ejection_target_not_adopted_near_final(self) -> None:
        """finalStageAt 0.99: цель EJECT >= 1, остаётся цель PROGRESS < 0.999"""
        rebalance = RebalanceState(
            nonce=1,
            tokens=[
                _rebalance().tokens[0],
                _rebalance().tokens[1].model_copy(
                    update={"weight": WeightRange(low=0, spot=5 * 10**26, high=10**54)}
                ),
                _rebalance().tokens[2].model_copy(
                    update={"weight": WeightRange(low=0, spot=5 * 10**14, high=10**54)}
                ),
            ],
            limits=RebalanceLimits(low=10**17, spot=D18, high=10**19),
            price_control=PriceControl.PARTIAL,
        )
        _, metrics = _auction(
            rebalance,
            [5 * 10**4, 495 * 10**15, 495 * 10**3],
            initial_assets=[333 * 10**3, 333 * 10**15, 334 * 10**3],
            final_stage_at=0.99,
        )
        assert metrics.round == AuctionRound.EJECT
        assert metrics.absolute_progression < metrics.target < 0.999
        assert metrics.target == pytest.approx(0.996413, abs=1e-5)

    def test_progress_without_ejection(self) -> None:
        """Без выбывающих токенов раунд PROGRESS"""
        rebalance = _rebalance()
        _, metrics = _auction(
            rebalance,
            [0, 8 * 10**17, 2 * 10**5],
            initial_assets=[0, D18, 0],
        )
        assert metrics.round == AuctionRound.PROGRESS
        assert metrics.initial_progression == pytest.approx(0.5)
        assert metrics.absolute_progression == pytest.approx(0.7)
        assert metrics.target == pytest.approx(0.95)

    def test_target_snaps_to_one(self) -> None:
        """Цель PROGRESS >= 0.997 → FINAL"""
        _, metrics = _auction(
            _rebalance(),
            [0, 8 * 10**17, 2 * 10**5],
            initial_assets=[0, D18, 0],
            final_stage_at=0.995,
        )
        assert metrics.round == AuctionRound.FINAL
        assert metrics.target == 1.0

    def test_progression_never_regresses(self) -> None:
        """Текущая прогрессия ниже начальной → поднимается до начальной"""
        _, metrics = _auction(_rebalance(), ALL_USDC, initial_assets=[5 * 10**5, 25 * 10**16, 25 * 10**4])
        assert metrics.initial_progression == pytest.approx(0.5)
        assert metrics.absolute_progression == pytest.approx(0.5)
        assert metrics.relative_progression == 0.0
        assert metrics.target == pytest.approx(0.95)


class TestPriceMoves:
    """Изменения цен в пределах исходного диапазона"""

    def test_usdc_down_ten_percent(self) -> None:
        """share дешевле BU: spot limit остаётся на on-chain 1e18"""
        args, _ = _auction(_rebalance(), ALL_USDC, prices=[0.9, 1, 1])
        limits = args.new_limits
        assert (limits.low, limits.spot, limits.high) == (9 * 10**17, D18, D18)

    def test_spot_limit_never_below_onchain(self) -> None:
        """0.95 USDC на share при BU = $1: spot limit не опускается ниже 1e18"""
        rebalance = _rebalance()
        args, _ = _auction(rebalance, [95 * 10**4, 0, 0])
        limits = args.new_limits
        assert limits.spot == rebalance.limits.spot == D18
        assert limits.low <= limits.spot <= limits.high

    def test_progression_measured_at_onchain_spot(self) -> None:
        """Ожидаемые балансы считаются от on-chain spot limit, а не от share / BU"""
        _, metrics = _auction(_rebalance(), [0, 48 * 10**16, 47 * 10**4])
        assert metrics.absolute_progression == pytest.approx(1.0)
        assert metrics.round == AuctionRound.FINAL

    def test_new_prices_clamped_to_initial_range(self) -> None:
        rebalance = _rebalance()
        args, _ = _auction(rebalance, ALL_USDC, prices=[0.9, 1, 1])
        usdc = args.new_prices[0]
        assert usdc.low == rebalance.tokens[0].price.low
        assert usdc.high == 909090909090909090909090909090

    def test_price_control_none_passthrough(self) -> None:
        rebalance = _rebalance(price_control=PriceControl.NONE)
        args, _ = _auction(rebalance, ALL_USDC)
        assert args.new_prices == tuple(t.price for t in rebalance.tokens)


class TestTracking:
    """TRACKING ребалансировка"""

    def test_limits(self) -> None:
        args, _ = _auction(_rebalance(WeightControl.TRACKING), ALL_USDC)
        limits = args.new_limits
        assert (limits.low, limits.spot, limits.high) == (9 * 10**17, D18, 1111111111111111111)

    def test_all_tokens_and_fixed_weights(self) -> None:
        args, _ = _auction(_rebalance(WeightControl.TRACKING), ALL_USDC)
        assert args.tokens == ("USDC", "DAI", "USDT")
        dai = args.new_weights[1]
        assert dai.low == dai.spot == dai.high == 5 * 10**26


# =============================================================================
# SAFETY CHECKS
# =============================================================================


class TestSafetyChecks:
    """Защитные проверки"""

    def test_price_out_of_bounds(self) -> None:
        rebalance = _replace_token(_rebalance(), 0, price=PriceRange(low=8 * 10**29, high=85 * 10**28))
        with pytest.raises(PriceOutOfBoundsError, match="auction launcher MUST closeRebalance") as exc_info:
            _auction(rebalance, ALL_USDC)
        assert exc_info.value.token == "USDC"
        assert exc_info.value.spot_price == 10**30

    def test_price_out_of_bounds_message(self) -> None:
        rebalance = _replace_token(_rebalance(), 0, price=PriceRange(low=8 * 10**29, high=85 * 10**28))
        with pytest.raises(PriceOutOfBoundsError) as exc_info:
            _auction(rebalance, ALL_USDC)
        assert str(exc_info.value).startswith(
            "spot price 1000000000000000000000000000000 out of bounds relative to initial range "
            "[800000000000000000000000000000, 850000000000000000000000000000]!"
        )

    def test_value_divergence(self) -> None:
        with pytest.raises(ValueDivergenceError, match="too different"):
            _auction(_rebalance(), [20 * 10**6, 0, 0])

    def test_degenerate_price_range(self) -> None:
        rebalance = _replace_token(_rebalance(), 0, price=PriceRange(low=10**30, high=10**30))
        rebalance = rebalance.model_copy(
            update={"limits": RebalanceLimits(low=1, spot=D18, high=10**36)}
        )
        with pytest.raises(DegeneratePriceRangeError, match="no price range"):
            _auction(rebalance, ALL_USDC)

    def test_degenerate_range_allowed_without_price_control(self) -> None:
        rebalance = _replace_token(
            _rebalance(price_control=PriceControl.NONE), 0, price=PriceRange(low=10**30, high=10**30)
        )
        args, _ = _auction(rebalance, ALL_USDC)
        assert args.new_prices[0] == PriceRange(low=10**30, high=10**30)

    def test_degenerate_range_of_excluded_token(self) -> None:
        """Токен вне ребалансировки тоже проверяется на вырожденный диапазон"""
        rebalance = _replace_token(
            _rebalance(), 2, in_rebalance=False, price=PriceRange(low=10**30, high=10**30)
        )
        with pytest.raises(DegeneratePriceRangeError, match="no price range"):
            _auction(rebalance, ALL_USDC)


class TestInputErrors:
    """Ошибки входа"""

    def test_final_stage_above_one(self) -> None:
        with pytest.raises(InvalidFinalStageError, match="finalStageAt must be less than 1"):
            _auction(_rebalance(), ALL_USDC, final_stage_at=1.01)

    def test_length_mismatch(self) -> None:
        with pytest.raises(LengthMismatchError):
            _auction(_rebalance(), [10**6, 0])

    def test_missing_price(self) -> None:
        with pytest.raises(MissingPriceError, match="missing price for token DAI"):
            _auction(_rebalance(), ALL_USDC, prices=[1, 0, 1])

    def test_price_error_one(self) -> None:
        with pytest.raises(InvalidPriceError):
            _auction(_rebalance(), ALL_USDC, price_errors=[0.01, 1, 0.01])

    def test_zero_supply(self) -> None:
        with pytest.raises(InvalidSupplyError):
            _auction(_rebalance(), ALL_USDC, supply=0)


# =============================================================================
# ENGINE
# =============================================================================


class TestEngine:
    """Тесты класса AuctionRoundEngine"""

    def test_excluded_tokens_filtered(self) -> None:
        rebalance = _replace_token(_rebalance(), 2, in_rebalance=False)
        args, _ = _auction(rebalance, ALL_USDC)
        assert args.tokens == ("USDC", "DAI")
        assert len(args.new_weights) == len(args.new_prices) == 2

    def test_custom_policy(self) -> None:
        """Порог материальности выбывания выше остатка USDC → FINAL"""
        engine = AuctionRoundEngine(policy=AuctionPolicy(ejection_materiality=0.5))
        _, metrics = engine.compute_next_auction(
            _rebalance(), D18, D18, ALL_USDC, TARGET, NEAR_COMPLETE, DECIMALS, PRICES, AUCTION_ERRORS, 0.9
        )
        assert metrics.round == AuctionRound.FINAL

    def test_policy_coerced_to_decimal(self) -> None:
        policy = AuctionPolicy(ejection_buffer=1.2)
        assert str(policy.ejection_buffer) == "1.2"
        with pytest.raises(ValueError):
            AuctionPolicy(max_value_divergence=0.5)

    def test_deterministic(self) -> None:
        first = _auction(_rebalance(), NEAR_COMPLETE)
        second = _auction(_rebalance(), NEAR_COMPLETE)
        assert first == second

    def test_trace_events(self) -> None:
        tracer = RecordingTracer()
        _auction(_rebalance(), ALL_USDC, tracer=tracer)
        names = tracer.names()
        for event in (
            "auction.input",
            "auction.values",
            "auction.progression",
            "auction.round",
            "auction.limits",
            "auction.weights",
            "auction.prices",
            "auction.metrics",
        ):
            assert event in names
        assert tracer.last("auction.round")["round"] == "EJECT"

    def test_converging_balances(self) -> None:
        """USDC → DAI/USDT по 10% за шаг: прогрессия не убывает, в конце FINAL"""
        rebalance = _rebalance()
        progressions = []
        for step in range(11):
            current = [
                10**6 * (10 - step) // 10,
                5 * 10**17 * step // 10,
                5 * 10**5 * step // 10,
            ]
            _, metrics = _auction(rebalance, current)
            progressions.append(metrics.absolute_progression)

        assert progressions == sorted(progressions)
        assert metrics.round == AuctionRound.FINAL
        assert metrics.target == 1.0

    def test_invariants_hold(self) -> None:
        """Новые диапазоны внутри on-chain диапазонов"""
        rebalance = _rebalance()
        for assets in (ALL_USDC, NEAR_COMPLETE, CONVERGED, [10**5, 55 * 10**16, 35 * 10**4]):
            args, _ = _auction(rebalance, assets)
            onchain = rebalance.limits
            for value in (args.new_limits.low, args.new_limits.spot, args.new_limits.high):
                assert onchain.low <= value <= onchain.high
            for params, weight, price in zip(rebalance.tokens, args.new_weights, args.new_prices):
                assert params.weight.low <= weight.low <= weight.spot <= weight.high <= params.weight.high
                assert params.price.low <= price.low <= price.high <= params.price.high

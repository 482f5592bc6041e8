import pytest

from backtest_lab.config.models import BacktestConfig
from backtest_lab.errors import InsufficientDataError
from backtest_lab.simulator.engine import ExecutionSimulator
from backtest_lab.simulator.models import ExitReason, SignalAction

from support import ScriptedStrategy, make_candles, no_cost_config

BUY = SignalAction.BUY
SELL = SignalAction.SELL


def test_stop_loss_closes_on_unslipped_move():
    candles = make_candles([100.0, 95.0, 100.0])
    result = ExecutionSimulator(BacktestConfig()).run(candles, ScriptedStrategy({0: BUY}))

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.exit_reason == ExitReason.STOP_LOSS
    assert trade.exit_time == candles[1].open_time
    assert trade.pnl_percentage == pytest.approx(-5.0)


def test_take_profit_closes_position():
    candles = make_candles([100.0, 101.0, 104.0, 104.0])
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy({0: BUY}))

    assert [trade.exit_reason for trade in result.trades] == [ExitReason.TAKE_PROFIT]
    assert result.trades[0].pnl_percentage == pytest.approx(4.0)


def test_buy_then_sell_is_a_signal_exit_with_costs():
    config = BacktestConfig(slippage=0.1, taker_fees=0.1)
    candles = make_candles([100.0, 100.5, 101.0])
    result = ExecutionSimulator(config).run(candles, ScriptedStrategy({0: BUY, 2: SELL}))

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.exit_reason == ExitReason.SIGNAL

    entry_fill = 100.0 * 1.001
    notional = 10000.0 * 0.10
    entry_fees = notional * 0.001
    quantity = (notional - entry_fees) / entry_fill
    exit_fill = 101.0 * 0.999
    pnl = (exit_fill - 100.0) * quantity
    exit_fees = exit_fill * quantity * 0.001

    assert trade.entry_price == pytest.approx(100.0)
    assert trade.quantity == pytest.approx(quantity)
    assert trade.entry_fees == pytest.approx(entry_fees)
    assert trade.exit_fees == pytest.approx(exit_fees)
    assert trade.pnl == pytest.approx(pnl)
    assert trade.net_pnl == pytest.approx(pnl - entry_fees - exit_fees)
    assert trade.entry_slippage == pytest.approx(entry_fill - 100.0)
    assert trade.exit_slippage == pytest.approx(101.0 - exit_fill)
    assert trade.pnl_percentage == pytest.approx((exit_fill - 100.0) / 100.0 * 100.0)
    assert trade.net_pnl_percentage == pytest.approx(trade.net_pnl / (100.0 * quantity) * 100.0)
    assert result.final_balance == pytest.approx(10000.0 + trade.net_pnl)


def test_trade_prices_are_candle_closes_and_slippage_is_separate():
    config = no_cost_config(slippage=1.0, take_profit=10)
    candles = make_candles([100.0, 101.0, 102.0])
    result = ExecutionSimulator(config).run(candles, ScriptedStrategy({0: BUY, 2: SELL}))

    trade = result.trades[0]
    assert trade.entry_price == pytest.approx(100.0)
    assert trade.exit_price == pytest.approx(102.0)
    assert trade.entry_slippage == pytest.approx(1.0)
    assert trade.exit_slippage == pytest.approx(1.02)
    assert trade.pnl == pytest.approx((102.0 * 0.99 - 100.0) * trade.quantity)


def test_net_pnl_identity_holds_for_every_trade():
    closes = [100, 101, 99, 102, 103, 98, 97, 100, 104, 105]
    script = {0: BUY, 2: SELL, 3: BUY, 5: SELL, 6: BUY, 9: SELL}
    config = BacktestConfig(slippage=0.2, maker_fees=0.05, use_maker_fees=True, stop_loss=10, take_profit=20)
    result = ExecutionSimulator(config).run(make_candles(closes), ScriptedStrategy(script))

    assert len(result.trades) == 3
    for trade in result.trades:
        assert trade.net_pnl == pytest.approx(trade.pnl - trade.entry_fees - trade.exit_fees)
        assert trade.exit_time >= trade.entry_time
        assert trade.entry_fees > 0 and trade.exit_fees > 0


def test_only_one_position_is_held_at_a_time():
    candles = make_candles([100.0] * 8)
    script = {index: BUY for index in range(8)}
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy(script))

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.entry_time == candles[0].open_time
    assert trade.exit_reason == ExitReason.END_OF_DATA
    assert trade.exit_time == candles[-1].open_time


def test_open_position_is_closed_at_end_of_data():
    candles = make_candles([100.0, 100.5, 101.0])
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy({1: BUY}))

    assert [trade.exit_reason for trade in result.trades] == [ExitReason.END_OF_DATA]
    assert result.trades[0].pnl == pytest.approx((101.0 - 100.5) * result.trades[0].quantity)


def test_candle_that_closed_a_position_does_not_reopen():
    candles = make_candles([100.0, 95.0, 95.0])
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy({0: BUY, 1: BUY}))

    assert len(result.trades) == 1
    assert result.trades[0].exit_reason == ExitReason.STOP_LOSS


def test_stop_loss_wins_over_same_candle_sell():
    candles = make_candles([100.0, 90.0])
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy({0: BUY, 1: SELL}))

    assert [trade.exit_reason for trade in result.trades] == [ExitReason.STOP_LOSS]


def test_signals_below_activation_threshold_are_ignored():
    candles = make_candles([100.0, 100.5, 101.0])
    strategy = ScriptedStrategy({0: BUY}, confidence=0.4)
    result = ExecutionSimulator(no_cost_config()).run(candles, strategy)
    assert result.trades == []

    lenient = ExecutionSimulator(no_cost_config(), activation_threshold=0.3).run(candles, strategy)
    assert len(lenient.trades) == 1


def test_sell_while_flat_is_a_no_op():
    candles = make_candles([100.0, 101.0, 102.0])
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy({0: SELL, 1: SELL}))
    assert result.trades == []
    assert result.performance.total_trades == 0


def test_first_processed_window_has_min_window_candles():
    candles = make_candles([100.0 + i for i in range(6)])
    result = ExecutionSimulator(no_cost_config()).run(candles, ScriptedStrategy({}, window=4))

    assert result.candles_processed == 3
    assert result.signals[0].timestamp == candles[3].open_time


def test_short_series_raises_insufficient_data():
    candles = make_candles([100.0, 101.0])
    with pytest.raises(InsufficientDataError, match="Need at least 5 candles, got 2"):
        ExecutionSimulator(BacktestConfig()).run(candles, ScriptedStrategy({}, window=5))


def test_position_size_scales_from_running_balance():
    closes = [100.0, 110.0, 110.0, 110.0]
    config = no_cost_config(take_profit=5.0, position_size=50.0)
    result = ExecutionSimulator(config).run(make_candles(closes), ScriptedStrategy({0: BUY, 2: BUY}))

    first, second = result.trades
    assert first.exit_reason == ExitReason.TAKE_PROFIT
    balance_after_first = 10000.0 + first.net_pnl
    assert second.quantity == pytest.approx(balance_after_first * 0.5 / 110.0)

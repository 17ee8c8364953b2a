"""DataBuffer 테스트
Feature: bitbank-stream
Property 6: 버퍼 데이터 격리
Property 7: 플러시 후 버퍼 비움
"""

import asyncio
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st, settings

from bitbank_stream.buffer import DATATYPES, DataBuffer
from bitbank_stream.models import BookView, PriceLevel, TradeEvent


# ── 전략 ──

PAIRS = ["btc_jpy", "eth_jpy", "xrp_jpy"]
pair_st = st.sampled_from(PAIRS)
recv_time_st = st.floats(min_value=1.0, max_value=2e9)
trade_st = st.builds(
    TradeEvent,
    pair=pair_st,
    transaction_id=st.integers(min_value=1, max_value=10**12),
    side=st.sampled_from(["buy", "sell"]),
    price=st.integers(min_value=1, max_value=10**8).map(str),
    amount=st.just("0.01"),
    executed_at=st.integers(min_value=1, max_value=2 * 10**12),
)


def run_async(coro):
    return asyncio.run(coro)


def view(pair: str, seq: str = "1") -> BookView:
    return BookView(pair, seq, 1700000000000,
                    asks=(PriceLevel("6000000", Decimal("0.5")),),
                    bids=(PriceLevel("5999000", Decimal("1")),))


# ── Property 6: 버퍼 데이터 격리 ──

class TestBufferIsolation:

    @given(pair=pair_st, trade=trade_st, recv_time=recv_time_st)
    @settings(max_examples=100)
    def test_data_isolation(self, pair, trade, recv_time):
        """데이터타입 T, 페어 P의 레코드는 해당 위치에만 존재"""
        buf = DataBuffer()
        run_async(buf.add_view(view(pair), recv_time))
        run_async(buf.add_trade(trade, recv_time))
        result = run_async(buf.flush())

        assert set(result) == set(DATATYPES)
        assert list(result["orderbook"]) == [pair]
        assert list(result["trade"]) == [trade.pair]
        [ob] = result["orderbook"][pair]
        [tr] = result["trade"][trade.pair]
        assert ob["asks"] == [["6000000", "0.5"]]
        assert tr["transaction_id"] == trade.transaction_id
        assert ob["recv_time"] == tr["recv_time"] == recv_time


# ── Property 7: 플러시 후 버퍼 비움 ──

class TestBufferFlush:

    @given(trades=st.lists(trade_st, min_size=1, max_size=20))
    @settings(max_examples=100)
    def test_flush_returns_all_and_clears(self, trades):
        """flush 후 반환 데이터는 모든 레코드를 순서대로 포함, 버퍼는 비어 있음"""
        buf = DataBuffer()
        expected: dict[str, list[int]] = {}
        for i, trade in enumerate(trades):
            run_async(buf.add_trade(trade, float(i)))
            expected.setdefault(trade.pair, []).append(trade.transaction_id)
        assert buf.record_count() == len(trades)

        result = run_async(buf.flush())
        got = {pair: [r["transaction_id"] for r in rows] for pair, rows in result["trade"].items()}
        assert got == expected
        assert result["orderbook"] == {}
        assert buf.record_count() == 0
        assert run_async(buf.flush()) == {"orderbook": {}, "trade": {}}


# ── 단위 테스트 ──

class TestBufferUnit:

    def test_force_flush_threshold(self):
        buf = DataBuffer(max_memory_mb=0)  # 0MB = 항상 초과
        run_async(buf.add_view(view("btc_jpy"), 1.0))
        assert buf.needs_force_flush()

    def test_no_force_flush_when_small(self):
        buf = DataBuffer(max_memory_mb=500)
        run_async(buf.add_view(view("btc_jpy"), 1.0))
        assert not buf.needs_force_flush()

    def test_unknown_datatype(self):
        with pytest.raises(ValueError):
            run_async(DataBuffer().add("ticker", "btc_jpy", {}))

"""채널 이벤트 디코딩 모듈 - room_name 접두사로 타입 이벤트 생성"""

from __future__ import annotations

from typing import Any, Union

from bitbank_stream.errors import ParseError
from bitbank_stream.models import (
    ChannelEvent, DiffEvent, SnapshotEvent, TradeEvent, TickerEvent,
)

DEPTH_DIFF = "depth_diff_"
DEPTH_WHOLE = "depth_whole_"
TRANSACTIONS = "transactions_"
TICKER = "ticker_"

DIFF_OVERFLOW_KEYS = ("ao", "bu", "au", "bo", "am", "bm")
WHOLE_OVERFLOW_KEYS = ("asks_over", "bids_under", "asks_under", "bids_over",
                       "ask_market", "bid_market")

TypedEvent = Union[DiffEvent, SnapshotEvent, TradeEvent, TickerEvent]


def pair_of(channel_name: str) -> str:
    """depth_diff_btc_jpy → btc_jpy"""
    for prefix in (DEPTH_DIFF, DEPTH_WHOLE, TRANSACTIONS, TICKER):
        if channel_name.startswith(prefix):
            return channel_name[len(prefix):]
    raise ParseError(f"알 수 없는 채널: {channel_name}")


def decode_events(event: ChannelEvent) -> list[TypedEvent]:
    """ChannelEvent → 타입 이벤트 목록 (transactions는 체결마다 하나)"""
    name = event.channel_name
    data = event.payload
    if not isinstance(data, dict):
        raise ParseError(f"{name}: data가 객체가 아님 ({type(data).__name__})")
    pair = pair_of(name)

    if name.startswith(DEPTH_DIFF):
        return [DiffEvent(
            pair=pair,
            asks=_rows(data, "a"),
            bids=_rows(data, "b"),
            sequence=_str(data, "s"),
            timestamp=_int(data, "t"),
            overflow={k: str(data[k]) for k in DIFF_OVERFLOW_KEYS if data.get(k) is not None},
        )]

    if name.startswith(DEPTH_WHOLE):
        return [SnapshotEvent(
            pair=pair,
            asks=_rows(data, "asks"),
            bids=_rows(data, "bids"),
            sequence=_str(data, "sequenceId"),
            timestamp=_int(data, "timestamp"),
            overflow={k: str(data[k]) for k in WHOLE_OVERFLOW_KEYS if data.get(k) is not None},
        )]

    if name.startswith(TRANSACTIONS):
        items = data.get("transactions")
        if not isinstance(items, list):
            raise ParseError(f"{name}: transactions 누락")
        trades = []
        for item in items:
            if not isinstance(item, dict):
                raise ParseError(f"{name}: 체결 항목이 객체가 아님")
            trades.append(TradeEvent(
                pair=pair,
                transaction_id=_int(item, "transaction_id"),
                side=_str(item, "side"),
                price=_num_str(item, "price"),
                amount=_num_str(item, "amount"),
                executed_at=_int(item, "executed_at"),
            ))
        return trades

    # ticker_
    return [TickerEvent(
        pair=pair,
        sell=_num_str(data, "sell"),
        buy=_num_str(data, "buy"),
        open=_num_str(data, "open"),
        high=_num_str(data, "high"),
        low=_num_str(data, "low"),
        last=_num_str(data, "last"),
        vol=_num_str(data, "vol"),
        timestamp=_int(data, "timestamp"),
    )]


def _rows(data: dict, key: str) -> list[tuple[str, str]]:
    """[[price, amount], ...] 구조 검증. 수치 파싱은 오더북에서 수행"""
    rows = data.get(key)
    if not isinstance(rows, list):
        raise ParseError(f"'{key}' 필드가 배열이 아님")
    result = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            raise ParseError(f"'{key}' 행 형식 오류: {row!r}")
        price, amount = row[0], row[1]
        if not isinstance(price, str) or not isinstance(amount, str):
            raise ParseError(f"'{key}' 행은 문자열 쌍이어야 함: {row!r}")
        result.append((price, amount))
    return result


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ParseError(f"'{key}' 필드 누락 또는 문자열 아님")
    return value


def _num_str(data: dict, key: str) -> str:
    # 시세/체결 값은 문자열 또는 숫자로 올 수 있음
    value: Any = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ParseError(f"'{key}' 필드 누락 또는 수치 아님")
    return str(value)


def _int(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        raise ParseError(f"'{key}' 필드가 정수 아님")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ParseError(f"'{key}' 필드 누락 또는 정수 아님") from None

"""데이터 모델 정의 - 스트림 프레임, bitbank 채널 이벤트, 오더북 뷰, 서명 요청"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import NamedTuple


# ── 프레임 관련 ──

# 외부 태그 (첫 글자)
OPEN, CLOSE, PING, PONG, MESSAGE = "0", "1", "2", "3", "4"
# 메시지 프레임 내부 태그 (두 번째 글자)
CONNECT_ACK, DISCONNECT, EVENT = "0", "1", "2"


@dataclass(frozen=True)
class ControlFrame:
    """제어 프레임 (open/close/ping/pong)"""
    kind: str                    # "open" | "close" | "ping" | "pong"
    payload: str = ""            # 태그 뒤의 원문 (open은 세션 JSON)


@dataclass(frozen=True)
class MessageFrame:
    """메시지 프레임 (connect_ack/event/disconnect)"""
    kind: str                    # "connect_ack" | "event" | "disconnect"
    payload: str = ""            # 내부 태그 뒤의 원문 JSON


@dataclass(frozen=True)
class SessionInfo:
    """open 패킷의 세션 정보"""
    sid: str
    ping_interval: int           # ms
    ping_timeout: int            # ms
    max_payload: int = 0


@dataclass(frozen=True)
class ChannelEvent:
    """완전히 풀어낸 이벤트 프레임 (room_name + message.data)"""
    channel_name: str
    payload: object


# ── 오더북 관련 ──

class PriceLevel(NamedTuple):
    """호가 한 단계 (가격 원문 문자열, 정확한 수량)"""
    price: str
    quantity: Decimal


@dataclass
class DiffEvent:
    """depth_diff_{pair} 이벤트. 수량 "0"은 해당 호가 삭제"""
    pair: str
    asks: list[tuple[str, str]]  # [(price, amount), ...]
    bids: list[tuple[str, str]]
    sequence: str                # s
    timestamp: int               # t (ms)
    overflow: dict[str, str] = field(default_factory=dict)  # ao, bu, au, bo, am, bm (변경 시에만)


@dataclass
class SnapshotEvent:
    """depth_whole_{pair} 이벤트. 0이 아닌 호가만 포함"""
    pair: str
    asks: list[tuple[str, str]]
    bids: list[tuple[str, str]]
    sequence: str                # sequenceId
    timestamp: int               # ms
    overflow: dict[str, str] = field(default_factory=dict)  # asks_over, bids_under, ...


@dataclass(frozen=True)
class BookView:
    """읽기 전용 상위 N호가 (asks 오름차순, bids 내림차순)"""
    pair: str
    sequence: str
    timestamp: int
    asks: tuple[PriceLevel, ...]
    bids: tuple[PriceLevel, ...]

    def to_record(self, recv_time: float) -> dict:
        """버퍼 저장용 레코드"""
        return {
            "pair": self.pair,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "recv_time": recv_time,
            "asks": [[p, str(q)] for p, q in self.asks],
            "bids": [[p, str(q)] for p, q in self.bids],
        }


# ── 체결/시세 관련 ──

@dataclass
class TradeEvent:
    """transactions_{pair} 이벤트의 체결 한 건"""
    pair: str
    transaction_id: int
    side: str                    # buy / sell
    price: str
    amount: str
    executed_at: int             # ms


@dataclass
class TickerEvent:
    """ticker_{pair} 이벤트"""
    pair: str
    sell: str
    buy: str
    open: str
    high: str
    low: str
    last: str
    vol: str
    timestamp: int               # ms


# ── REST 관련 ──

@dataclass(frozen=True)
class SignedRequest:
    """서명 완료된 private 요청"""
    method: str
    path: str
    query: str
    body: str | None
    timestamp_ms: int
    window_ms: int
    signature: str

    def headers(self, api_key: str) -> dict[str, str]:
        """인증 헤더"""
        return {
            "ACCESS-KEY": api_key,
            "ACCESS-REQUEST-TIME": str(self.timestamp_ms),
            "ACCESS-TIME-WINDOW": str(self.window_ms),
            "ACCESS-SIGNATURE": self.signature,
        }

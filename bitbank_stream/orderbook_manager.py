"""오더북 재구성 모듈 - diff 버퍼링, 스냅샷 기준 재생, 시퀀스 정렬"""

from __future__ import annotations

import logging
import re
import time
from decimal import Decimal
from typing import TYPE_CHECKING

from bitbank_stream.errors import BookNotReadyError, ParseError, ProtocolViolation
from bitbank_stream.models import BookView, DiffEvent, PriceLevel, SnapshotEvent

if TYPE_CHECKING:
    from bitbank_stream.integrity_logger import IntegrityLogger

logger = logging.getLogger(__name__)

# 부호, 지수, 밑줄(_) 구분자 없는 10진 표기만
DECIMAL_RE = re.compile(r"[0-9]+(?:\.[0-9]+)?")


def parse_sequence(sequence: str) -> int:
    """시퀀스 ID → 정수 ("9" < "10")"""
    if not isinstance(sequence, str) or not (sequence.isascii() and sequence.isdigit()):
        raise ParseError(f"시퀀스 ID가 숫자가 아님: {sequence!r}")
    return int(sequence)


def parse_decimal(value: str, field_name: str) -> Decimal:
    """가격/수량 문자열 → Decimal. 실패 시 ParseError (오더북에서는 치명적)"""
    if not isinstance(value, str) or not DECIMAL_RE.fullmatch(value):
        raise ParseError(f"{field_name} 파싱 실패: {value!r}")
    return Decimal(value)


def _parse_rows(rows: list[tuple[str, str]]) -> list[tuple[Decimal, Decimal]]:
    """(가격, 수량) 목록. 적용 전에 전부 파싱"""
    return [(parse_decimal(p, "price"), parse_decimal(q, "quantity")) for p, q in rows]


class OrderBookReconciler:
    """페어 하나의 오더북 상태.

    첫 스냅샷 전까지 diff는 시퀀스 키로 버퍼에만 쌓이고(중복 키는 마지막 값),
    스냅샷이 오면 그보다 앞선 diff를 버리고 나머지를 오름차순으로 한 번씩 적용한 뒤 ready가 된다.
    """

    def __init__(self, pair: str):
        self.pair = pair
        self.buffered_diffs: dict[int, DiffEvent] = {}
        # 가격 키는 Decimal: "10"과 "10.0"은 같은 호가, 키는 처음 들어온 원문 표기를 유지
        self.asks: dict[Decimal, Decimal] = {}
        self.bids: dict[Decimal, Decimal] = {}
        self.ready = False
        self.sequence = ""
        self.timestamp = 0

    def on_diff(self, diff: DiffEvent) -> None:
        seq = parse_sequence(diff.sequence)
        asks = _parse_rows(diff.asks)
        bids = _parse_rows(diff.bids)

        if not self.ready:
            self.buffered_diffs[seq] = diff
            return

        self._apply(self.asks, asks)
        self._apply(self.bids, bids)
        self.sequence = diff.sequence
        self.timestamp = diff.timestamp

    def on_snapshot(self, snapshot: SnapshotEvent) -> int:
        """스냅샷 적용 후 버퍼 재생. 폐기된 오래된 diff 개수 반환"""
        seq = parse_sequence(snapshot.sequence)
        asks = _parse_rows(snapshot.asks)
        bids = _parse_rows(snapshot.bids)
        for side, rows in (("asks", asks), ("bids", bids)):
            for price, qty in rows:
                if qty == 0:
                    raise ProtocolViolation(
                        f"{self.pair} 스냅샷 {snapshot.sequence}의 {side}에 수량 0 행: {price}"
                    )

        # 재생 대상 diff도 미리 파싱해 두어 실패 시 상태를 건드리지 않음
        pending = []
        discarded = 0
        for diff_seq in sorted(self.buffered_diffs):
            if diff_seq < seq:
                discarded += 1
                continue
            diff = self.buffered_diffs[diff_seq]
            pending.append((diff, _parse_rows(diff.asks), _parse_rows(diff.bids)))

        self.asks.clear()
        self.bids.clear()
        self._apply(self.asks, asks)
        self._apply(self.bids, bids)
        self.sequence = snapshot.sequence
        self.timestamp = snapshot.timestamp

        for diff, diff_asks, diff_bids in pending:
            self._apply(self.asks, diff_asks)
            self._apply(self.bids, diff_bids)
            self.sequence = diff.sequence
            self.timestamp = diff.timestamp

        self.buffered_diffs.clear()
        if not self.ready:
            logger.info(f"[오더북] {self.pair} 준비 완료 (sequence={snapshot.sequence}, "
                        f"재생={len(pending)}, 폐기={discarded})")
        self.ready = True
        return discarded

    def reset(self) -> None:
        """재연결 등으로 연속성을 보장할 수 없을 때. 호가는 남겨 두고 버퍼링 상태로"""
        self.ready = False
        self.buffered_diffs.clear()

    def current_view(self, depth: int = 20) -> BookView:
        """상위 depth호가 (asks 오름차순, bids 내림차순)"""
        if not self.ready:
            raise BookNotReadyError(f"{self.pair} 오더북이 아직 스냅샷을 받지 못함")
        asks = sorted(self.asks.items())[:depth]
        bids = sorted(self.bids.items(), reverse=True)[:depth]
        return BookView(
            pair=self.pair,
            sequence=self.sequence,
            timestamp=self.timestamp,
            asks=tuple(PriceLevel(str(p), q) for p, q in asks),
            bids=tuple(PriceLevel(str(p), q) for p, q in bids),
        )

    def _apply(self, book_side: dict[Decimal, Decimal],
               rows: list[tuple[Decimal, Decimal]]) -> None:
        """수량 0은 삭제, 나머지는 갱신"""
        for price, qty in rows:
            if qty == 0:
                book_side.pop(price, None)
            else:
                book_side[price] = qty


class OrderBookManager:
    """페어별 OrderBookReconciler 소유 및 이벤트 라우팅"""

    def __init__(self, pairs: list[str], integrity_logger: IntegrityLogger | None = None):
        self.pairs = pairs
        self.integrity_logger = integrity_logger
        self.books: dict[str, OrderBookReconciler] = {
            p: OrderBookReconciler(p) for p in pairs
        }

    def apply_event(self, event: DiffEvent | SnapshotEvent,
                    depth: int = 20) -> BookView | None:
        """diff/스냅샷 적용. 오더북이 ready이면 상위 호가 뷰, 아니면 None.

        수치 파싱 실패는 해당 오더북을 리셋(다음 스냅샷까지 버퍼링)한 뒤 다시 던진다.
        """
        book = self.books.get(event.pair)
        if book is None:
            logger.debug(f"[오더북] 추적하지 않는 페어: {event.pair}")
            return None

        try:
            if isinstance(event, SnapshotEvent):
                discarded = book.on_snapshot(event)
                if discarded and self.integrity_logger:
                    self.integrity_logger.record_discarded_diffs(event.pair, discarded)
            else:
                book.on_diff(event)
        except ParseError as e:
            self._reset_book(book, f"파싱 실패: {e}")
            raise

        if not book.ready:
            return None
        return book.current_view(depth)

    def reset_all(self, reason: str) -> None:
        """재연결 시 모든 오더북을 버퍼링 상태로"""
        for book in self.books.values():
            self._reset_book(book, reason)

    def _reset_book(self, book: OrderBookReconciler, reason: str) -> None:
        book.reset()
        logger.warning(f"[오더북] {book.pair} 리셋: {reason}")
        if self.integrity_logger:
            self.integrity_logger.record_book_reset(book.pair, reason, time.time())

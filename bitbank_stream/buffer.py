"""메모리 버퍼 모듈 - 데이터타입/페어별 레코드 누적, 플러시 시 통째로 교체"""

from __future__ import annotations

import asyncio
import sys
import logging
from collections import defaultdict
from dataclasses import asdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bitbank_stream.models import BookView, TradeEvent

logger = logging.getLogger(__name__)

DATATYPES = ("orderbook", "trade")

Records = dict[str, dict[str, list[dict]]]  # datatype -> pair -> 레코드


def _empty() -> dict[str, defaultdict]:
    return {datatype: defaultdict(list) for datatype in DATATYPES}


class DataBuffer:
    """오더북 뷰와 체결을 Parquet 저장 전까지 보관"""

    def __init__(self, max_memory_mb: int = 500):
        self.max_memory_bytes = max_memory_mb * 1024 * 1024
        self._records = _empty()
        self._lock = asyncio.Lock()

    async def add(self, datatype: str, pair: str, record: dict) -> None:
        if datatype not in self._records:
            raise ValueError(f"알 수 없는 데이터타입: {datatype}")
        async with self._lock:
            self._records[datatype][pair].append(record)

    async def add_view(self, view: BookView, recv_time: float) -> None:
        """ready 상태 오더북의 상위 호가 뷰"""
        await self.add("orderbook", view.pair, view.to_record(recv_time))

    async def add_trade(self, trade: TradeEvent, recv_time: float) -> None:
        record = asdict(trade)
        record["recv_time"] = recv_time
        await self.add("trade", trade.pair, record)

    async def flush(self) -> Records:
        """누적 레코드를 반환하고 빈 버퍼로 교체"""
        async with self._lock:
            records, self._records = self._records, _empty()
        return {datatype: dict(by_pair) for datatype, by_pair in records.items()}

    def record_count(self) -> int:
        return sum(len(rows) for by_pair in self._records.values() for rows in by_pair.values())

    def estimate_memory_usage(self) -> int:
        """현재 메모리 사용량 추정 (바이트)"""
        total = 0
        for by_pair in self._records.values():
            for rows in by_pair.values():
                total += sys.getsizeof(rows) + sum(sys.getsizeof(r) for r in rows)
        return total

    def needs_force_flush(self) -> bool:
        return self.estimate_memory_usage() >= self.max_memory_bytes

"""데이터 무결성 로깅 모듈 - 폐기 프레임, 재연결, 오더북 리셋, 주기 통계"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class IntegrityLogger:
    """데이터 무결성 로깅"""

    MAX_EVENT_BUFFER = 10000  # 이벤트 기록 최대 보관 수

    def __init__(self, log_dir: Path | str):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._dropped_frames: dict[str, int] = defaultdict(int)
        self._reconnects: list[dict] = []
        self._book_resets: list[dict] = []
        self._discarded_diffs: dict[str, int] = defaultdict(int)
        self._flush_stats: list[dict] = []
        self._message_counts: dict[str, int] = defaultdict(int)

    def record_dropped_frame(self, kind: str) -> None:
        """파싱 실패로 폐기한 프레임 (종류별: frame, open, connect_ack, event)"""
        self._dropped_frames[kind] += 1

    def record_reconnect(self, timestamp: float, reason: str) -> None:
        """재연결 이벤트 기록"""
        self._reconnects.append({
            "timestamp": timestamp,
            "reason": reason,
        })

    def record_book_reset(self, pair: str, reason: str, timestamp: float) -> None:
        """오더북 리셋 기록 (다음 스냅샷까지 버퍼링)"""
        if len(self._book_resets) >= self.MAX_EVENT_BUFFER:
            self._book_resets = self._book_resets[-self.MAX_EVENT_BUFFER // 2:]
        self._book_resets.append({
            "timestamp": timestamp,
            "pair": pair,
            "reason": reason,
        })

    def record_discarded_diffs(self, pair: str, count: int) -> None:
        """스냅샷보다 오래되어 버린 diff 수"""
        self._discarded_diffs[pair] += count

    def record_flush(self, pair: str, datatype: str, record_count: int,
                     file_size: int, time_range: tuple[float, float]) -> None:
        """플러시 통계 기록"""
        self._flush_stats.append({
            "pair": pair,
            "datatype": datatype,
            "record_count": record_count,
            "file_size": file_size,
            "time_start": time_range[0],
            "time_end": time_range[1],
        })

    def increment_message_count(self, channel: str) -> None:
        """채널별 이벤트 수신 카운트 증가"""
        self._message_counts[channel] += 1

    def get_periodic_stats(self) -> dict:
        """현재 주기 통계 반환"""
        now = datetime.now(timezone.utc)
        return {
            "timestamp": now.isoformat(),
            "dropped_frames": dict(self._dropped_frames),
            "dropped_frame_count": sum(self._dropped_frames.values()),
            "reconnects": list(self._reconnects),
            "reconnect_count": len(self._reconnects),
            "book_resets": list(self._book_resets),
            "discarded_diffs": dict(self._discarded_diffs),
            "flush_stats": list(self._flush_stats),
            "message_counts": dict(self._message_counts),
        }

    async def write_periodic_log(self) -> Path:
        """주기적 통계 JSON 로그 작성 후 주기 통계 리셋"""
        stats = self.get_periodic_stats()
        now = datetime.now(timezone.utc)
        log_file = self.log_dir / f"stats_{now.strftime('%Y%m%d_%H')}.json"
        with open(log_file, "w") as f:
            json.dump(stats, f, indent=2, default=str)
        self._dropped_frames.clear()
        self._reconnects.clear()
        self._book_resets.clear()
        self._discarded_diffs.clear()
        self._flush_stats.clear()
        self._message_counts.clear()
        logger.info(f"[로그] {log_file}")
        return log_file

"""Parquet 파일 저장 모듈 - 주기적 플러시, 파일명 생성, snappy 압축, 체크섬"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from bitbank_stream.buffer import DataBuffer
    from bitbank_stream.config import Config
    from bitbank_stream.integrity_logger import IntegrityLogger

logger = logging.getLogger(__name__)


class Flusher:
    """주기적 Parquet 파일 저장"""

    def __init__(self, config: Config, buffer: DataBuffer,
                 integrity_logger: IntegrityLogger | None = None):
        self.config = config
        self.buffer = buffer
        self.integrity_logger = integrity_logger
        self.data_dir = Path(config.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    async def run(self) -> None:
        """주기적 플러시 루프"""
        while True:
            await asyncio.sleep(self.config.flush_interval)
            try:
                await self.flush_now()
            except Exception as e:
                logger.error(f"[플러시 에러] {e}")

    async def flush_now(self) -> list[Path]:
        """즉시 플러시 실행, 생성된 파일 경로 반환"""
        data = await self.buffer.flush()
        now = datetime.now(timezone.utc)
        created_files = []

        for datatype, by_pair in data.items():
            for pair, records in by_pair.items():
                fpath = self.data_dir / self._generate_filename(pair, datatype, now)
                count = self._save_parquet(records, fpath)
                file_size = fpath.stat().st_size
                created_files.append(fpath)
                logger.info(f"[저장] {fpath} ({count}건)")

                self.record_checksum(fpath, self.compute_checksum(fpath), count, file_size)

                if self.integrity_logger:
                    self.integrity_logger.record_flush(
                        pair=pair, datatype=datatype,
                        record_count=count, file_size=file_size,
                        time_range=self._recv_time_range(records),
                    )

        return created_files

    @staticmethod
    def _recv_time_range(records: list[dict]) -> tuple[float, float]:
        """레코드 수신 시각 범위 (버퍼 레코드는 모두 recv_time을 가짐)"""
        times = [r["recv_time"] for r in records if "recv_time" in r]
        return (min(times), max(times)) if times else (0.0, 0.0)

    @staticmethod
    def _generate_filename(pair: str, datatype: str, timestamp: datetime) -> str:
        """파일명 생성: {PAIR}_{datatype}_{YYYYMMDD}_{HHMM}.parquet (예: BTC_JPY_orderbook_...)"""
        return f"{pair.upper()}_{datatype}_{timestamp.strftime('%Y%m%d_%H%M')}.parquet"

    @staticmethod
    def _save_parquet(data: list[dict], filepath: Path) -> int:
        """Parquet 저장 (snappy 압축), 레코드 수 반환. 임시 파일에 쓰고 rename"""
        df = pd.DataFrame(data)
        tmp_fd, tmp_path = tempfile.mkstemp(
            suffix=".parquet.tmp", dir=filepath.parent
        )
        os.close(tmp_fd)
        try:
            df.to_parquet(tmp_path, index=False, compression="snappy")
            os.replace(tmp_path, filepath)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return len(df)

    @staticmethod
    def compute_checksum(filepath: Path) -> str:
        """SHA-256 해시 계산"""
        h = hashlib.sha256()
        with open(filepath, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                h.update(chunk)
        return h.hexdigest()

    def record_checksum(self, filepath: Path, sha256: str,
                        record_count: int, file_size: int) -> None:
        """checksums.json에 체크섬 기록 추가"""
        checksum_file = self.data_dir / "checksums.json"
        entries = []
        if checksum_file.exists():
            with open(checksum_file, "r") as f:
                entries = json.load(f)
        entries.append({
            "filename": filepath.name,
            "sha256": sha256,
            "record_count": record_count,
            "file_size": file_size,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
        with open(checksum_file, "w") as f:
            json.dump(entries, f, indent=2)

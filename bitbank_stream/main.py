"""메인 애플리케이션 - 모든 모듈 초기화 및 동시 실행"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

from bitbank_stream.buffer import DataBuffer
from bitbank_stream.collector import StreamCollector
from bitbank_stream.config import Config
from bitbank_stream.flusher import Flusher
from bitbank_stream.integrity_logger import IntegrityLogger
from bitbank_stream.orderbook_manager import OrderBookManager

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)
logger = logging.getLogger(__name__)


def build_components(config: Config) -> tuple[IntegrityLogger, DataBuffer, OrderBookManager,
                                             Flusher, StreamCollector]:
    """설정으로 모듈 생성 및 연결"""
    integrity_logger = IntegrityLogger(config.log_dir)
    buffer = DataBuffer(config.max_buffer_mb)
    ob_manager = OrderBookManager(config.depth_pairs, integrity_logger)
    flusher = Flusher(config, buffer, integrity_logger)
    collector = StreamCollector(config, ob_manager, buffer, integrity_logger)
    return integrity_logger, buffer, ob_manager, flusher, collector


async def main(config_path: str = "config.yaml") -> None:
    """모든 모듈 초기화 및 asyncio.gather로 동시 실행"""
    config = Config.from_yaml(config_path)

    # 디렉토리 생성 (로깅 FileHandler보다 먼저)
    Path(config.data_dir).mkdir(parents=True, exist_ok=True)
    Path(config.log_dir).mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(
        Path(config.log_dir) / "stream.log", encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)

    integrity_logger, buffer, ob_manager, flusher, collector = build_components(config)

    logger.info("=== bitbank 스트림 수집 시작 ===")
    logger.info(f"채널: {config.channels}")
    logger.info(f"오더북 페어: {ob_manager.pairs}")
    if config.diff_only_pairs:
        logger.warning(f"depth_whole_ 채널 없음, 오더북 제외: {config.diff_only_pairs}")

    async def periodic_log():
        while True:
            await asyncio.sleep(config.flush_interval)
            await integrity_logger.write_periodic_log()

    # 강제 플러시 감시
    async def force_flush_monitor():
        while True:
            await asyncio.sleep(30)
            if buffer.needs_force_flush():
                logger.warning(f"[강제 플러시] 메모리 임계값 초과 ({buffer.record_count()}건)")
                await flusher.flush_now()

    tasks = [collector.run(), periodic_log()]
    if config.record_data:
        tasks += [flusher.run(), force_flush_monitor()]

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler():
        logger.info("종료 신호 수신, 마지막 플러시 실행 중...")
        collector.stop()
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    gathered = asyncio.gather(*tasks)
    shutdown = asyncio.create_task(shutdown_event.wait())
    await asyncio.wait([shutdown, gathered], return_when=asyncio.FIRST_COMPLETED)

    failure = None
    if gathered.done() and not gathered.cancelled():
        failure = gathered.exception()
        if failure:
            logger.error(f"수집 중단: {failure!r}")
    gathered.cancel()
    shutdown.cancel()

    if config.record_data:
        logger.info("마지막 플러시 실행...")
        try:
            await flusher.flush_now()
        except Exception as e:
            logger.error(f"마지막 플러시 실패: {e}")
    await integrity_logger.write_periodic_log()

    logger.info("=== 시스템 종료 ===")
    if failure:
        raise failure


if __name__ == "__main__":
    config_file = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
    asyncio.run(main(config_file))

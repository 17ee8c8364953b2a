"""WebSocket 스트림 수집 모듈 - 연결 루프, 재연결 요청, 이벤트 디스패치"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

import websockets
from websockets.exceptions import WebSocketException

from bitbank_stream.errors import ParseError
from bitbank_stream.framer import TransportFramer
from bitbank_stream.models import (
    BookView, DiffEvent, SnapshotEvent, TickerEvent, TradeEvent,
)

if TYPE_CHECKING:
    from bitbank_stream.buffer import DataBuffer
    from bitbank_stream.config import Config
    from bitbank_stream.integrity_logger import IntegrityLogger
    from bitbank_stream.orderbook_manager import OrderBookManager

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


@dataclass(frozen=True)
class ConnectionReset:
    """새 연결이 열렸음을 디스패처에 알리는 표식 (이벤트와 같은 큐로 순서 보장)"""
    reason: str


_STOP = object()


class QueueSink:
    """프레이머 이벤트를 큐에 넣는 EventSink. 수신 루프는 디스패치를 기다리지 않는다"""

    def __init__(self, queue: asyncio.Queue):
        self.queue = queue

    def on_event(self, event: object) -> None:
        self.queue.put_nowait(event)


class StreamCollector:
    """bitbank 스트림 수신기.

    수신 루프는 프레임마다 응답(pong, join)을 먼저 보내고,
    이벤트는 별도 디스패치 태스크가 수신 순서대로 처리한다.
    """

    HANDSHAKE_TIMEOUT = 30.0  # open 패킷 전 수신 대기 (초)

    def __init__(self, config: Config, orderbook_manager: OrderBookManager,
                 buffer: DataBuffer | None = None,
                 integrity_logger: IntegrityLogger | None = None,
                 connect: Callable[..., Any] | None = None):
        self.config = config
        self.ob_manager = orderbook_manager
        self.buffer = buffer
        self.integrity_logger = integrity_logger
        self._connect = connect or websockets.connect
        self._events: asyncio.Queue = asyncio.Queue()
        self._control: asyncio.Queue = asyncio.Queue()
        self.framer = TransportFramer(config.channels, QueueSink(self._events), integrity_logger)
        self.reconnect_delay = 1.0
        self.latest_views: dict[str, BookView] = {}
        self.latest_tickers: dict[str, TickerEvent] = {}
        self._running = False
        self._connected_once = False

    def request_reconnect(self, reason: str = "manual") -> None:
        """재연결 요청. 처리 중인 프레임을 끝낸 뒤 새 연결을 열고 기존 연결을 닫는다"""
        self._control.put_nowait(reason)

    def stop(self) -> None:
        self._running = False
        self._control.put_nowait(_STOP)

    async def run(self) -> None:
        """수신 루프 + 디스패치 루프. ProtocolViolation은 그대로 전파"""
        self._running = True
        tasks = [
            asyncio.create_task(self._connection_loop()),
            asyncio.create_task(self._dispatch_loop()),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()

    async def _connection_loop(self) -> None:
        ws = None
        reason = "initial"
        try:
            while self._running:
                try:
                    if ws is None:
                        ws = await self._open(reason)
                    request = await self._receive(ws)
                    if request is _STOP:
                        break
                    # make-before-break: 새 연결 후 기존 연결 종료
                    logger.info(f"[재연결] 요청 수신: {request}")
                    new_ws = await self._open(str(request))
                    if self.integrity_logger:
                        self.integrity_logger.record_reconnect(time.time(), str(request))
                    await self._close(ws, reconnect=True)
                    ws = new_ws
                except CONNECTION_ERRORS as e:
                    reason = f"{type(e).__name__}: {e}"
                    logger.error(f"[에러] {reason}, {self.reconnect_delay}초 후 재연결...")
                    if ws is not None:
                        await self._close(ws, reconnect=True)
                        ws = None
                    if self.integrity_logger:
                        self.integrity_logger.record_reconnect(time.time(), reason)
                    await asyncio.sleep(self.reconnect_delay)
                    self._increase_reconnect_delay()
        finally:
            if ws is not None:
                await self._close(ws, reconnect=False)
            self._events.put_nowait(_STOP)

    async def _open(self, reason: str):
        """연결 수립, 핸드셰이크 전송, 재연결이면 오더북 리셋 표식 큐잉"""
        # 하트비트는 프레이밍 계층(2/3)에서 처리
        ws = await self._connect(self.config.ws_url, ping_interval=None)
        try:
            for frame in self.framer.handle_start():
                await ws.send(frame)
        except CONNECTION_ERRORS:
            await self._close(ws, reconnect=True)
            raise
        if self._connected_once:
            self._events.put_nowait(ConnectionReset(reason))
        self._connected_once = True
        self._reset_reconnect_delay()
        logger.info("[연결] bitbank WebSocket 연결 성공")
        return ws

    async def _close(self, ws, reconnect: bool) -> None:
        self.framer.handle_close(reconnect)
        try:
            await ws.close()
        except CONNECTION_ERRORS as e:
            logger.debug(f"[연결] 종료 중 에러 무시: {e}")

    async def _receive(self, ws) -> object:
        """재연결/종료 요청이 올 때까지 프레임 수신. 요청 값을 반환"""
        control = asyncio.ensure_future(self._control.get())
        try:
            while True:
                timeout = self.framer.liveness_timeout() or self.HANDSHAKE_TIMEOUT
                recv = asyncio.ensure_future(ws.recv())
                done, _ = await asyncio.wait(
                    {recv, control}, timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if recv in done:
                    await self._handle_frame(ws, recv.result())
                    if control in done:
                        return control.result()
                    continue
                recv.cancel()
                if control in done:
                    return control.result()
                raise asyncio.TimeoutError(f"{timeout}초 동안 프레임 없음")
        finally:
            if not control.done():
                control.cancel()

    async def _handle_frame(self, ws, raw: str | bytes) -> None:
        """응답 프레임을 이벤트 처리보다 먼저 전송"""
        for reply in self.framer.handle_message(raw):
            await ws.send(reply)

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._events.get()
            if event is _STOP:
                return
            await self.dispatch(event)

    async def dispatch(self, event: object) -> None:
        """타입 이벤트를 오더북/버퍼로 전달"""
        if isinstance(event, ConnectionReset):
            self.ob_manager.reset_all(f"재연결 ({event.reason})")
            return

        recv_time = time.time()
        if isinstance(event, (DiffEvent, SnapshotEvent)):
            try:
                view = self.ob_manager.apply_event(event, self.config.orderbook_top_levels)
            except ParseError as e:
                logger.error(f"[오더북] {event.pair} 이벤트 거부, 다음 스냅샷까지 버퍼링: {e}")
                return
            if view is not None:
                self.latest_views[view.pair] = view
                if self._recording:
                    await self.buffer.add_view(view, recv_time)

        elif isinstance(event, TradeEvent):
            if self._recording:
                await self.buffer.add_trade(event, recv_time)

        elif isinstance(event, TickerEvent):
            self.latest_tickers[event.pair] = event

    @property
    def _recording(self) -> bool:
        return self.buffer is not None and self.config.record_data

    def _reset_reconnect_delay(self) -> None:
        self.reconnect_delay = 1.0

    def _increase_reconnect_delay(self) -> None:
        self.reconnect_delay = min(self.reconnect_delay * 2, 60.0)

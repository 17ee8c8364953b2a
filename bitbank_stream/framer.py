"""스트림 프레이밍 모듈 - 2계층 텍스트 프로토콜 디코딩/인코딩, 하트비트, 핸드셰이크

외부 태그(첫 글자): 0=open, 1=close, 2=ping, 3=pong, 4=message
message 내부 태그(두 번째 글자): 0=connect-ack, 1=disconnect, 2=event
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Protocol

from bitbank_stream.errors import ParseError, ProtocolViolation
from bitbank_stream.events import decode_events
from bitbank_stream.models import (
    ControlFrame, MessageFrame, ChannelEvent, SessionInfo,
    OPEN, CLOSE, PING, PONG, MESSAGE, CONNECT_ACK, DISCONNECT, EVENT,
)
from bitbank_stream.subscription import SubscriptionManager

if TYPE_CHECKING:
    from bitbank_stream.integrity_logger import IntegrityLogger

logger = logging.getLogger(__name__)

CONTROL_KINDS = {OPEN: "open", CLOSE: "close", PING: "ping", PONG: "pong"}
MESSAGE_KINDS = {CONNECT_ACK: "connect_ack", DISCONNECT: "disconnect", EVENT: "event"}
_CONTROL_TAGS = {v: k for k, v in CONTROL_KINDS.items()}
_MESSAGE_TAGS = {v: k for k, v in MESSAGE_KINDS.items()}

HANDSHAKE = MESSAGE + CONNECT_ACK  # "40"


class EventSink(Protocol):
    """디코딩된 이벤트를 상위 로직으로 넘기는 단일 메서드 인터페이스"""

    def on_event(self, event: object) -> None:
        ...


def decode_frame(text: str) -> ControlFrame | MessageFrame:
    """텍스트 프레임 한 개 디코딩. 형식 오류는 ParseError"""
    if not text:
        raise ParseError("빈 프레임")
    tag = text[0]
    if tag in CONTROL_KINDS:
        return ControlFrame(kind=CONTROL_KINDS[tag], payload=text[1:])
    if tag == MESSAGE:
        if len(text) < 2:
            raise ParseError("message 프레임에 내부 태그 없음")
        inner = text[1]
        if inner not in MESSAGE_KINDS:
            raise ParseError(f"알 수 없는 내부 태그: {inner!r}")
        return MessageFrame(kind=MESSAGE_KINDS[inner], payload=text[2:])
    raise ParseError(f"알 수 없는 외부 태그: {tag!r}")


def encode_frame(frame: ControlFrame | MessageFrame) -> str:
    """프레임 → 전송 텍스트"""
    if isinstance(frame, ControlFrame):
        return _CONTROL_TAGS[frame.kind] + frame.payload
    return MESSAGE + _MESSAGE_TAGS[frame.kind] + frame.payload


def unwrap_event(payload: str) -> ChannelEvent:
    """["message", {"message": {"data": ...}, "room_name": "..."}] → ChannelEvent"""
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(f"event JSON 파싱 실패: {e}") from None
    if not isinstance(body, list) or len(body) < 2:
        raise ParseError("event 페이로드는 [name, data] 배열이어야 함")
    data = body[1]
    if not isinstance(data, dict):
        raise ParseError("event data가 객체가 아님")
    room = data.get("room_name")
    message = data.get("message")
    if not isinstance(room, str) or not isinstance(message, dict) or "data" not in message:
        raise ParseError("room_name 또는 message.data 누락")
    return ChannelEvent(channel_name=room, payload=message["data"])


class TransportFramer:
    """영속 연결 위의 프레이밍 프로토콜 처리.

    handle_message()는 보낼 프레임(pong, join)을 반환하고,
    디코딩된 이벤트는 sink.on_event()로 한 방향으로만 넘긴다.
    """

    def __init__(self, channels: list[str], sink: EventSink,
                 integrity_logger: IntegrityLogger | None = None):
        self.subscriptions = SubscriptionManager(channels)
        self.sink = sink
        self.integrity_logger = integrity_logger
        self.session: SessionInfo | None = None

    def handle_start(self) -> list[str]:
        """새 연결마다 핸드셰이크 프레임 전송"""
        self.session = None
        logger.debug(f"[프레임] 핸드셰이크 전송: {HANDSHAKE}")
        return [HANDSHAKE]

    def handle_message(self, raw: str | bytes) -> list[str]:
        """수신 프레임 처리, 응답 프레임 목록 반환"""
        if isinstance(raw, (bytes, bytearray)):
            raise ProtocolViolation(f"텍스트 프로토콜에서 바이너리 프레임 수신 ({len(raw)} bytes)")

        try:
            frame = decode_frame(raw)
        except ParseError as e:
            self._drop("frame", str(e), raw)
            return []

        if isinstance(frame, ControlFrame):
            return self._handle_control(frame)
        return self._handle_message_frame(frame, raw)

    def handle_close(self, reconnect: bool) -> None:
        logger.info(f"[프레임] 연결 종료 (reconnect={reconnect})")

    def liveness_timeout(self) -> float | None:
        """pingInterval + pingTimeout (초). open 패킷 전이면 None"""
        if self.session is None:
            return None
        return (self.session.ping_interval + self.session.ping_timeout) / 1000.0

    def _handle_control(self, frame: ControlFrame) -> list[str]:
        if frame.kind == "ping":
            logger.debug("[프레임] ping 수신, pong 전송")
            return [encode_frame(ControlFrame("pong"))]
        if frame.kind == "open":
            try:
                info = json.loads(frame.payload)
                self.session = SessionInfo(
                    sid=str(info["sid"]),
                    ping_interval=int(info["pingInterval"]),
                    ping_timeout=int(info["pingTimeout"]),
                    max_payload=int(info.get("maxPayload", 0)),
                )
            except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError,
                    OverflowError) as e:
                self._drop("open", f"open 패킷 파싱 실패: {e}", OPEN + frame.payload)
                return []
            logger.info(f"[프레임] 세션 시작 sid={self.session.sid} "
                        f"pingInterval={self.session.ping_interval}")
        elif frame.kind == "close":
            logger.info(f"[프레임] 서버 close 패킷: {frame.payload}")
        else:
            logger.debug("[프레임] pong 수신")
        return []

    def _handle_message_frame(self, frame: MessageFrame, raw: str) -> list[str]:
        if frame.kind == "connect_ack":
            try:
                ack = json.loads(frame.payload)
            except json.JSONDecodeError as e:
                self._drop("connect_ack", f"connect-ack JSON 파싱 실패: {e}", raw)
                return []
            logger.info(f"[프레임] connect-ack 수신 {ack}, {len(self.subscriptions.channels)}개 채널 구독")
            return self.subscriptions.join_frames()

        if frame.kind == "disconnect":
            logger.warning(f"[프레임] 서버 disconnect 패킷: {raw}")
            return []

        try:
            channel_event = unwrap_event(frame.payload)
            events = decode_events(channel_event)
        except ParseError as e:
            self._drop("event", str(e), raw)
            return []

        if self.integrity_logger:
            self.integrity_logger.increment_message_count(channel_event.channel_name)
        for event in events:
            self.sink.on_event(event)
        return []

    def _drop(self, kind: str, reason: str, raw: str) -> None:
        logger.warning(f"[프레임 폐기] {kind}: {reason}: {raw[:200]!r}")
        if self.integrity_logger:
            self.integrity_logger.record_dropped_frame(kind)

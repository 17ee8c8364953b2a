"""채널 구독 모듈 - connect-ack 수신 시 join-room 요청 생성"""

from __future__ import annotations

import json
import logging

from bitbank_stream.models import MESSAGE, EVENT

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """설정된 채널 목록 전체에 대한 join-room 프레임 생성.

    상태는 불변 채널 목록뿐이라 재연결마다 동일하게 호출하면
    새 연결은 항상 전체 채널에 구독된 상태로 끝난다.
    """

    JOIN_EVENT = "join-room"

    def __init__(self, channels: list[str] | tuple[str, ...]):
        self.channels: tuple[str, ...] = tuple(channels)

    @classmethod
    def join_frame(cls, channel: str) -> str:
        """42["join-room","<channel>"]"""
        body = json.dumps([cls.JOIN_EVENT, channel], separators=(",", ":"), ensure_ascii=False)
        return f"{MESSAGE}{EVENT}{body}"

    def join_frames(self) -> list[str]:
        """채널마다 정확히 하나씩, 설정 순서대로"""
        frames = [self.join_frame(c) for c in self.channels]
        for frame in frames:
            logger.debug(f"[구독] join 전송: {frame}")
        return frames

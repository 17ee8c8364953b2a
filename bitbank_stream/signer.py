"""private API 요청 서명 모듈 - HMAC-SHA256 + ACCESS-TIME-WINDOW"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time

from bitbank_stream.errors import ConfigError
from bitbank_stream.models import SignedRequest

logger = logging.getLogger(__name__)


class RequestSigner:
    """bitbank private API 인증 헤더 생성.

    서명 문자열 = 요청시각(ms) + 윈도우(ms) + (본문 JSON | 경로+쿼리).
    본문이 있으면 본문만, 없으면 경로+쿼리만 사용한다.
    상태가 없으므로 여러 요청에서 동시에 호출해도 된다.
    """

    def __init__(self, api_key: str, api_secret: str, window_ms: int = 5000):
        if not api_key or not api_secret:
            raise ConfigError("api_key/api_secret 미설정, 서명 불가")
        self.api_key = api_key
        self._secret = api_secret.encode("utf-8")
        self.window_ms = window_ms

    @staticmethod
    def signing_string(timestamp_ms: int, window_ms: int,
                       path_and_query: str, body: str | None = None) -> str:
        """서명 대상 문자열 구성"""
        target = body if body is not None else path_and_query
        return f"{timestamp_ms}{window_ms}{target}"

    def signature(self, message: str) -> str:
        """HMAC-SHA256 hex digest"""
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, method: str, path: str, query: str = "", body: str | None = None,
             timestamp_ms: int | None = None) -> SignedRequest:
        """요청 서명. timestamp_ms 미지정 시 서명 직전에 현재 시각을 읽는다"""
        path_and_query = f"{path}?{query}" if query else path
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        message = self.signing_string(timestamp_ms, self.window_ms, path_and_query, body)
        signed = SignedRequest(
            method=method.upper(),
            path=path,
            query=query,
            body=body,
            timestamp_ms=timestamp_ms,
            window_ms=self.window_ms,
            signature=self.signature(message),
        )
        logger.debug(f"[서명] {signed.method} {path_and_query} ts={timestamp_ms}")
        return signed

    def headers(self, signed: SignedRequest) -> dict[str, str]:
        """서명 결과를 HTTP 헤더로 변환"""
        headers = signed.headers(self.api_key)
        if signed.body is not None:
            headers["Content-Type"] = "application/json"
        return headers

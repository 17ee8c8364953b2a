"""REST API 클라이언트 모듈 - public/private 요청 구성, 서명, 응답 엔벨로프 해석"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode, urlparse

import aiohttp

from bitbank_stream.errors import ApiError, ParseError, RateLimitError, RATE_LIMIT_CODE
from bitbank_stream.signer import RequestSigner

if TYPE_CHECKING:
    from bitbank_stream.config import Config

logger = logging.getLogger(__name__)


class BitbankRestClient:
    """bitbank REST 클라이언트.

    조회는 쿼리 파라미터, 쓰기는 JSON 본문. 재시도는 하지 않는다
    (RateLimitError를 보고 호출 측이 백오프 결정).
    """

    def __init__(self, config: Config):
        self.config = config
        self._signer: RequestSigner | None = None

    @property
    def signer(self) -> RequestSigner:
        """private 요청 서명기. 자격 증명이 없으면 ConfigError"""
        if self._signer is None:
            self.config.require_credentials()
            self._signer = RequestSigner(
                self.config.api_key, self.config.api_secret,
                window_ms=self.config.access_time_window,
            )
        return self._signer

    def build_request(self, method: str, path: str, params: dict | None = None,
                      body: dict | None = None,
                      auth: bool = False) -> tuple[str, dict[str, str], str | None]:
        """(url, headers, data) 구성. private 요청은 서명 직전에 시각을 읽는다"""
        base = self.config.private_url if auth else self.config.public_url
        query = urlencode(params) if params else ""
        url = f"{base.rstrip('/')}{path}"
        if query:
            url = f"{url}?{query}"
        data = json.dumps(body) if body is not None else None

        headers: dict[str, str] = {}
        if auth:
            signer = self.signer
            # 서버가 보는 경로 (/v1 접두사 포함)
            server_path = urlparse(base).path.rstrip("/") + path
            signed = signer.sign(method, server_path, query=query if data is None else "",
                                 body=data)
            headers = signer.headers(signed)
        elif data is not None:
            headers["Content-Type"] = "application/json"
        return url, headers, data

    @staticmethod
    def parse_response(status: int, raw: bytes) -> Any:
        """{"success": 1, "data": ...} → data. 실패 엔벨로프는 ApiError/RateLimitError"""
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            logger.debug(f"[REST] 응답 파싱 실패 HTTP {status}: {raw[:200]!r}")
            raise ParseError(f"응답 JSON 파싱 실패 (HTTP {status})") from None
        if not isinstance(payload, dict) or "success" not in payload:
            raise ParseError(f"응답 엔벨로프 형식 오류 (HTTP {status})")

        if payload["success"] == 1:
            return payload.get("data")

        code = payload.get("code")
        data = payload.get("data")
        if code is None and isinstance(data, dict):
            code = data.get("code")
        try:
            code = int(code) if code is not None else None
        except (TypeError, ValueError):
            code = None

        if code == RATE_LIMIT_CODE:
            logger.warning(f"[REST] 요청 한도 초과 (code={code})")
            raise RateLimitError(payload, code)
        logger.debug(f"[REST] API 에러 HTTP {status}: {payload}")
        raise ApiError(payload, code)

    async def request(self, method: str, path: str, params: dict | None = None,
                      body: dict | None = None, auth: bool = False) -> Any:
        """요청 전송 및 응답 해석"""
        url, headers, data = self.build_request(method, path, params, body, auth)
        async with aiohttp.ClientSession() as session:
            async with session.request(
                method, url, headers=headers, data=data,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            ) as resp:
                raw = await resp.read()
                return self.parse_response(resp.status, raw)

    async def get(self, path: str, params: dict | None = None, auth: bool = False) -> Any:
        """조회 요청 (예: /btc_jpy/ticker, /user/assets)"""
        return await self.request("GET", path, params=params, auth=auth)

    async def post(self, path: str, body: dict) -> Any:
        """쓰기 요청 (항상 private, 예: /user/spot/order)"""
        return await self.request("POST", path, body=body, auth=True)

"""예외 정의 - 파싱/API/설정/프로토콜 위반"""

from __future__ import annotations

from typing import Any

RATE_LIMIT_CODE = 10009


class ConnectorError(Exception):
    """커넥터 공통 예외"""


class ParseError(ConnectorError):
    """잘못된 형식의 페이로드.

    프레임/이벤트 라우팅 계층에서는 로그 후 폐기, 오더북 수치 필드에서는 치명적.
    """


class ApiError(ConnectorError):
    """서버가 실패 엔벨로프({"success": 0, ...})로 응답"""

    def __init__(self, payload: Any, code: int | None = None):
        self.payload = payload
        self.code = code
        super().__init__(f"API 에러 code={code} payload={payload}")


class RateLimitError(ApiError):
    """요청 한도 초과 (code 10009). 호출 측 백오프 판단용"""


class ConfigError(ConnectorError):
    """자격 증명 누락 등 설정 오류. 네트워크 I/O 전에 발생"""


class ProtocolViolation(ConnectorError):
    """거래소 프로토콜 보장이 깨진 경우 (예상 밖 프레임 타입, 스냅샷의 0 수량 행)"""


class BookNotReadyError(ConnectorError):
    """첫 스냅샷 적용 전에 오더북 뷰를 요청함"""

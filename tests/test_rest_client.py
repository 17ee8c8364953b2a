"""REST 클라이언트 테스트
Feature: bitbank-stream
요청 구성, 서명 경로, 응답 엔벨로프 해석 검증
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bitbank_stream.config import Config
from bitbank_stream.errors import ApiError, ConfigError, ParseError, RateLimitError
from bitbank_stream.rest_client import BitbankRestClient
from bitbank_stream.signer import RequestSigner


@pytest.fixture
def config():
    return Config(api_key="my-key", api_secret="secret", access_time_window=1000)


@pytest.fixture
def client(config):
    return BitbankRestClient(config)


def mock_session_with(status: int, body: bytes):
    """aiohttp.ClientSession 대체 (session.request → resp.read)"""
    mock_resp = MagicMock()
    mock_resp.status = status
    mock_resp.read = AsyncMock(return_value=body)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)

    mock_session = MagicMock()
    mock_session.request = MagicMock(return_value=mock_resp)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=False)
    return mock_session


class TestBuildRequest:

    def test_public_get(self, client):
        url, headers, data = client.build_request("GET", "/btc_jpy/ticker")
        assert url == "https://public.bitbank.cc/btc_jpy/ticker"
        assert headers == {}
        assert data is None

    def test_private_get_signs_v1_path_and_query(self, client):
        with patch("bitbank_stream.signer.time.time", return_value=1700000000.0):
            url, headers, data = client.build_request(
                "GET", "/user/spot/active_orders", params={"pair": "btc_jpy"}, auth=True)
        assert url == "https://api.bitbank.cc/v1/user/spot/active_orders?pair=btc_jpy"
        assert data is None
        assert headers["ACCESS-KEY"] == "my-key"
        assert headers["ACCESS-REQUEST-TIME"] == "1700000000000"
        assert headers["ACCESS-TIME-WINDOW"] == "1000"
        expected = RequestSigner("my-key", "secret").signature(
            "17000000000001000/v1/user/spot/active_orders?pair=btc_jpy")
        assert headers["ACCESS-SIGNATURE"] == expected

    def test_private_post_signs_body(self, client):
        body = {"pair": "btc_jpy", "amount": "0.01", "side": "buy", "type": "market"}
        with patch("bitbank_stream.signer.time.time", return_value=1700000000.0):
            url, headers, data = client.build_request(
                "POST", "/user/spot/order", body=body, auth=True)
        assert url == "https://api.bitbank.cc/v1/user/spot/order"
        assert json.loads(data) == body
        assert headers["Content-Type"] == "application/json"
        expected = RequestSigner("k", "secret").signature(f"17000000000001000{data}")
        assert headers["ACCESS-SIGNATURE"] == expected

    def test_missing_credentials_before_io(self):
        client = BitbankRestClient(Config())

        async def run():
            with patch("aiohttp.ClientSession") as session_cls:
                with pytest.raises(ConfigError):
                    await client.get("/user/assets", auth=True)
                session_cls.assert_not_called()

        asyncio.run(run())


class TestParseResponse:

    def test_success(self):
        raw = b'{"success": 1, "data": {"assets": []}}'
        assert BitbankRestClient.parse_response(200, raw) == {"assets": []}

    def test_rate_limit(self):
        raw = b'{"success": 0, "data": {"code": 10009}}'
        with pytest.raises(RateLimitError) as exc:
            BitbankRestClient.parse_response(200, raw)
        assert exc.value.code == 10009

    def test_generic_error_top_level_code(self):
        raw = b'{"success": 0, "code": 20001}'
        with pytest.raises(ApiError) as exc:
            BitbankRestClient.parse_response(401, raw)
        assert not isinstance(exc.value, RateLimitError)
        assert exc.value.code == 20001
        assert exc.value.payload == {"success": 0, "code": 20001}

    def test_error_without_code(self):
        with pytest.raises(ApiError) as exc:
            BitbankRestClient.parse_response(500, b'{"success": 0}')
        assert exc.value.code is None

    @pytest.mark.parametrize("raw", [b"<html>", b"[]", b'{"data": 1}', b"\xff\xfe"])
    def test_malformed(self, raw):
        with pytest.raises(ParseError):
            BitbankRestClient.parse_response(502, raw)


class TestRequest:

    def test_public_get_roundtrip(self, client):
        session = mock_session_with(200, b'{"success": 1, "data": {"last": "6000000"}}')

        async def run():
            with patch("aiohttp.ClientSession", return_value=session):
                return await client.get("/btc_jpy/ticker")

        assert asyncio.run(run()) == {"last": "6000000"}
        args, kwargs = session.request.call_args
        assert args == ("GET", "https://public.bitbank.cc/btc_jpy/ticker")
        assert kwargs["data"] is None

    def test_post_rate_limited(self, client):
        session = mock_session_with(200, b'{"success": 0, "data": {"code": 10009}}')

        async def run():
            with patch("aiohttp.ClientSession", return_value=session):
                await client.post("/user/spot/order", {"pair": "btc_jpy"})

        with pytest.raises(RateLimitError):
            asyncio.run(run())
        args, kwargs = session.request.call_args
        assert args[0] == "POST"
        assert "ACCESS-SIGNATURE" in kwargs["headers"]

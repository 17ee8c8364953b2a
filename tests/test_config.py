"""Config YAML 라운드트립 테스트
Feature: bitbank-stream, Property 12: 설정 YAML 라운드트립
"""

import tempfile
import os

import pytest
from hypothesis import given, strategies as st, settings

from bitbank_stream.config import Config
from bitbank_stream.errors import ConfigError
from bitbank_stream.models import DiffEvent
from bitbank_stream.orderbook_manager import OrderBookManager


# ── Hypothesis 전략 ──

channel_st = st.from_regex(r"(depth_diff|depth_whole|transactions|ticker)_[a-z]{3,5}_jpy",
                           fullmatch=True)

config_st = st.builds(
    Config,
    channels=st.lists(channel_st, min_size=1, max_size=5),
    # 비어 있으면 환경변수로 채워지므로 항상 값을 준다
    api_key=st.from_regex(r"[a-zA-Z0-9]{1,30}", fullmatch=True),
    api_secret=st.from_regex(r"[a-zA-Z0-9]{1,30}", fullmatch=True),
    access_time_window=st.integers(min_value=1, max_value=60000),
    request_timeout=st.integers(min_value=1, max_value=60),
    orderbook_top_levels=st.integers(min_value=5, max_value=50),
    flush_interval=st.integers(min_value=60, max_value=86400),
    data_dir=st.just("./data"),
    log_dir=st.just("./logs"),
    max_buffer_mb=st.integers(min_value=50, max_value=2000),
    record_data=st.booleans(),
)


# ── Property 12: Config YAML 라운드트립 ──

class TestConfigYamlRoundtrip:

    @given(config=config_st)
    @settings(max_examples=100)
    def test_yaml_roundtrip(self, config: Config):
        """For any valid Config, YAML serialize then deserialize produces identical Config."""
        with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False, mode="w") as f:
            tmp_path = f.name

        try:
            config.to_yaml(tmp_path)
            restored = Config.from_yaml(tmp_path)
            assert config == restored, f"Roundtrip failed: {config} != {restored}"
        finally:
            os.unlink(tmp_path)


# ── 단위 테스트 ──

class TestConfigUnit:

    def test_defaults(self):
        c = Config()
        assert c.channels == ["depth_diff_btc_jpy", "depth_whole_btc_jpy", "transactions_btc_jpy"]
        assert c.access_time_window == 5000
        assert c.private_url == "https://api.bitbank.cc/v1"

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BITBANK_API_KEY", raising=False)
        monkeypatch.delenv("BITBANK_API_SECRET", raising=False)
        assert Config.from_yaml(str(tmp_path / "nope.yaml")) == Config()

    def test_unknown_keys_ignored(self, tmp_path):
        p = tmp_path / "config.yaml"
        p.write_text("channels: [ticker_btc_jpy]\nsymbols: [btcusdt]\n", encoding="utf-8")
        assert Config.from_yaml(str(p)).channels == ["ticker_btc_jpy"]

    def test_env_credentials(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BITBANK_API_KEY", "env-key")
        monkeypatch.setenv("BITBANK_API_SECRET", "env-secret")
        p = tmp_path / "config.yaml"
        p.write_text("api_key: file-key\n", encoding="utf-8")
        c = Config.from_yaml(str(p))
        assert c.api_key == "file-key"
        assert c.api_secret == "env-secret"

    def test_require_credentials(self):
        Config(api_key="k", api_secret="s").require_credentials()
        with pytest.raises(ConfigError, match="api_secret"):
            Config(api_key="k").require_credentials()

    def test_to_dict_masks_secret(self):
        assert Config(api_secret="s").to_dict()["api_secret"] == "***"
        assert Config().to_dict()["api_secret"] == ""

    def test_depth_pairs(self):
        c = Config(channels=["depth_diff_btc_jpy", "depth_whole_btc_jpy",
                             "transactions_btc_jpy", "depth_whole_xrp_jpy"])
        assert c.depth_pairs == ["btc_jpy", "xrp_jpy"]
        assert c.diff_only_pairs == []

    def test_diff_without_snapshot_channel_has_no_book(self):
        """depth_whole_ 없는 페어는 오더북을 만들지 않아 diff가 쌓이지 않는다"""
        c = Config(channels=["depth_diff_btc_jpy", "depth_diff_eth_jpy", "depth_whole_eth_jpy"])
        assert c.depth_pairs == ["eth_jpy"]
        assert c.diff_only_pairs == ["btc_jpy"]

        mgr = OrderBookManager(c.depth_pairs)
        for seq in range(1, 1001):
            assert mgr.apply_event(DiffEvent("btc_jpy", [("10", "1")], [], str(seq), seq)) is None
        assert "btc_jpy" not in mgr.books
        assert len(mgr.books["eth_jpy"].buffered_diffs) == 0

"""시스템 설정 모듈 - config.yaml 로드 및 Config 데이터클래스"""

import os
from dataclasses import dataclass, field, asdict
from pathlib import Path

import yaml

from bitbank_stream.errors import ConfigError

ENV_API_KEY = "BITBANK_API_KEY"
ENV_API_SECRET = "BITBANK_API_SECRET"


@dataclass
class Config:
    """시스템 설정 (config.yaml에서 로드)"""
    channels: list[str] = field(default_factory=lambda: [
        "depth_diff_btc_jpy", "depth_whole_btc_jpy", "transactions_btc_jpy",
    ])
    api_key: str = ""
    api_secret: str = ""
    public_url: str = "https://public.bitbank.cc"
    private_url: str = "https://api.bitbank.cc/v1"
    ws_url: str = "wss://stream.bitbank.cc/socket.io/?EIO=4&transport=websocket"
    access_time_window: int = 5000       # ms
    request_timeout: int = 10            # 초
    orderbook_top_levels: int = 20
    flush_interval: int = 3600
    data_dir: str = "./data"
    log_dir: str = "./logs"
    max_buffer_mb: int = 500
    record_data: bool = True

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """YAML 파일에서 Config 객체 생성 (키/시크릿이 비어 있으면 환경변수 사용)"""
        p = Path(path)
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            config = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        else:
            config = cls()
        config.api_key = config.api_key or os.environ.get(ENV_API_KEY, "")
        config.api_secret = config.api_secret or os.environ.get(ENV_API_SECRET, "")
        return config

    def to_yaml(self, path: str) -> None:
        """Config 객체를 YAML 파일로 저장"""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> dict:
        """Config를 딕셔너리로 변환 (시크릿은 가림)"""
        data = asdict(self)
        if data["api_secret"]:
            data["api_secret"] = "***"
        return data

    def require_credentials(self) -> None:
        """private API 호출 전 키/시크릿 확인. 없으면 ConfigError"""
        missing = [name for name, value in (("api_key", self.api_key),
                                            ("api_secret", self.api_secret)) if not value]
        if missing:
            raise ConfigError(f"private API 자격 증명 누락: {', '.join(missing)}")

    @property
    def depth_pairs(self) -> list[str]:
        """오더북 대상 페어 (순서 유지, 중복 제거).

        depth_whole_ 채널이 있는 페어만. 스냅샷 소스가 없는 페어는 ready가 될 수 없다.
        """
        pairs: list[str] = []
        for channel in self.channels:
            for prefix in ("depth_diff_", "depth_whole_"):
                if channel.startswith(prefix):
                    pair = channel[len(prefix):]
                    if f"depth_whole_{pair}" in self.channels and pair not in pairs:
                        pairs.append(pair)
        return pairs

    @property
    def diff_only_pairs(self) -> list[str]:
        """depth_whole_ 없이 depth_diff_만 구독한 페어 (오더북 미구성)"""
        return [channel[len("depth_diff_"):] for channel in self.channels
                if channel.startswith("depth_diff_")
                and f"depth_whole_{channel[len('depth_diff_'):]}" not in self.channels]

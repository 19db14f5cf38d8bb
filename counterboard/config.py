"""アプリケーション設定。

環境変数 COUNTERBOARD_* から読み込む。未設定の項目は既定値。
"""

import os
from collections.abc import Mapping

from pydantic import BaseModel, field_validator

ENV_PREFIX = "COUNTERBOARD_"


class Settings(BaseModel):
    """実行時設定。"""

    db_path: str = "data/counters.db"
    tick_interval: float = 1.0
    log_level: str = "INFO"
    log_file: str | None = None
    host: str = "127.0.0.1"
    port: int = 8000

    @field_validator("tick_interval")
    @classmethod
    def positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("tick_interval must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.strip().upper()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """環境変数から設定を構築する。"""
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if env.get(key):
                values[name] = env[key]
        return cls(**values)

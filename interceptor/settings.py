"""
Runtime settings.

Priority (highest first): CLI flags passed as init kwargs, ``INTERCEPTOR_*``
environment variables, code defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from interceptor.file_server import CHUNK_SIZE
from interceptor.history import LOG_FILE
from interceptor.rule_store import CONFIG_FILE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INTERCEPTOR_")

    # where config.json and requests.log.json live
    data_dir: Path = Path(".")
    # local targets must resolve inside this directory
    root_dir: Path = Field(default_factory=Path.cwd)
    mode: Literal["intercept", "proxy"] = "intercept"

    host: str = "0.0.0.0"
    port: int = 5050

    upstream_timeout: float = 30.0
    verify_ssl: bool = True
    chunk_size: int = CHUNK_SIZE

    log_json: bool = False
    verbose: bool = False

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILE

    @property
    def log_path(self) -> Path:
        return self.data_dir / LOG_FILE

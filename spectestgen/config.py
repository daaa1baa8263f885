"""Environment-based configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Generator configuration loaded from environment variables."""

    wast2json_bin: str = "wast2json"
    wast2json_args: list[str] = Field(default_factory=list)
    wasm2wat_bin: str = "wasm2wat"
    tool_timeout: int = Field(default=60, ge=1)
    slow_test_threshold: int = Field(default=200, ge=0)
    fast_tests_env: str = "FAST_TESTS"

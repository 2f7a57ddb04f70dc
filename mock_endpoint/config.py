from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    """
    Tuning knobs for the mock endpoint helper.

    None of these change what the endpoint answers; they only control how it
    binds, how long it waits for its server thread and how loudly it logs.
    Every field can be overridden with a `MOCK_ENDPOINT_`-prefixed
    environment variable or a `.env` file, which is handy on slow CI hosts
    where sockets from the previous test linger a little longer.
    """

    # Binding
    default_host: str = Field(
        default="127.0.0.1",
        description="Host the endpoint binds to when started without an explicit address.",
    )
    bind_retry_delay: float = Field(
        default=3.0,
        ge=0,
        description="Seconds to wait before the single retry of a failed bind to an explicit address.",
    )

    # Server thread
    startup_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Maximum seconds to wait for the server loop to report it has started.",
    )
    shutdown_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Maximum seconds to wait for the server thread to finish after stop().",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Level of the mock_endpoint logger.",
    )
    server_log_level: Literal["critical", "error", "warning", "info", "debug", "trace"] = Field(
        default="error",
        description="Log level handed to uvicorn for its own loggers.",
    )

    model_config = SettingsConfigDict(
        env_prefix="MOCK_ENDPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",  # a shared .env usually carries unrelated keys
    )


settings = Settings()

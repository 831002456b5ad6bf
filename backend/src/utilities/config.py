from pydantic_settings import BaseSettings, SettingsConfigDict

from utilities.constants import INBOUND_QUEUE_SIZE, SUBSCRIBER_QUEUE_SIZE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        cli_prog_name="webhook-logger",
        cli_implicit_flags=True,
    )

    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False

    # shared secret for POST /webhook; empty disables the check
    bearer: str = ""

    subscriber_queue_size: int = SUBSCRIBER_QUEUE_SIZE
    inbound_queue_size: int = INBOUND_QUEUE_SIZE

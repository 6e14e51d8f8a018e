from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Codey Gateway"
    sf_api_env: str = "prod"
    org_username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("codey_org_username", "sf_llmg_username", "org_username"),
    )
    org_instance_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("codey_org_instance_url", "org_instance_url"),
    )
    org_access_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("codey_org_access_token", "org_access_token"),
    )
    gateway_model: str = Field(
        default="claude-4-sonnet",
        validation_alias=AliasChoices("codey_gateway_model", "gateway_model"),
    )
    default_temperature: float = 0.7
    credential_expiry_buffer_seconds: float = 30.0
    tool_loop_limit: int = 8
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

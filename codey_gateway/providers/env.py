from __future__ import annotations

from typing import Literal

ApiEnv = Literal["prod", "dev", "test", "perf", "stage"]

API_ENVS: tuple[str, ...] = ("prod", "dev", "test", "perf", "stage")
GATEWAY_PATH = "/einstein/gpt/code/v1.1"


def resolve_api_env(value: str | None) -> ApiEnv:
    env = (value or "prod").strip().lower()
    if env in API_ENVS:
        return env  # type: ignore[return-value]
    return "prod"


def salesforce_base_url(env: ApiEnv = "prod") -> str:
    if env == "prod":
        return "https://api.salesforce.com"
    return f"https://{env}.api.salesforce.com"


def region_header(env: ApiEnv = "prod") -> str:
    if env == "prod":
        return "EAST_REGION_1"
    if env == "stage":
        return "EAST_REGION_2"
    return "WEST_REGION"


def gateway_base_url(env: ApiEnv = "prod") -> str:
    return f"{salesforce_base_url(env)}{GATEWAY_PATH}"

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_MODEL_KEY = "claude-4-sonnet"


@dataclass(frozen=True)
class GatewayModel:
    description: str
    display_id: str
    model: str
    is_inside_trust_boundary: bool = True
    supports_streaming: bool = True
    supports_mcp: bool = True
    supports_prompt_cache: bool = False
    supports_images: bool = False
    supports_structured_output: bool = False
    # Only the /stream endpoints answer; non-streaming calls are merged from chunks.
    streaming_only: bool = False
    # Tool calls arrive as {"functionCall": ...} JSON inside the text stream.
    inline_function_calls: bool = False
    max_input_tokens: int = 8192
    max_output_tokens: int = 8192
    permitted_parameters: tuple[str, ...] = ()
    custom_request_headers: dict[str, str] = field(default_factory=dict)
    custom_stream_headers: dict[str, str] = field(default_factory=dict)


QWEN = GatewayModel(
    description="Salesforce Qwen",
    display_id="SFR Model",
    model="xgen_stream",
    supports_mcp=False,
    streaming_only=True,
    inline_function_calls=True,
    max_input_tokens=32768,
    max_output_tokens=2048,
    permitted_parameters=("command_source", "guided_json", "user_prompt"),
    custom_stream_headers={"x-llm-provider": "InternalTextGeneration"},
)

CLAUDE_37_SONNET = GatewayModel(
    description="Claude 3.7 Sonnet",
    display_id="Claude 3.7 Sonnet",
    model="llmgateway__BedrockAnthropicClaude37Sonnet",
    permitted_parameters=("command_source", "guided_json"),
)

CLAUDE_4_SONNET = GatewayModel(
    description="Claude 4 Sonnet",
    display_id="Claude 4 Sonnet",
    model="llmgateway__BedrockAnthropicClaude4Sonnet",
    permitted_parameters=("command_source", "guided_json"),
)

GPT_4O_MINI = GatewayModel(
    description="ChatGPT 4o Mini",
    display_id="GPT-4o Mini",
    model="llmgateway__OpenAIGPT4OmniMini",
    is_inside_trust_boundary=False,
    supports_structured_output=True,
    max_input_tokens=128000,
    max_output_tokens=16384,
)

MODELS: dict[str, GatewayModel] = {
    "qwen": QWEN,
    "claude-3-7-sonnet": CLAUDE_37_SONNET,
    "claude-4-sonnet": CLAUDE_4_SONNET,
    "gpt-4o-mini": GPT_4O_MINI,
}


def get_model(key: str) -> GatewayModel:
    try:
        return MODELS[key]
    except KeyError:
        raise KeyError(f"Unknown gateway model: {key}") from None


def get_model_or_default(key: str | None) -> GatewayModel:
    if key and key in MODELS:
        return MODELS[key]
    for model in MODELS.values():
        if key and model.model == key:
            return model
    return MODELS[DEFAULT_MODEL_KEY]

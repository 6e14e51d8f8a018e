from __future__ import annotations

import copy
import json
import logging
from typing import Any

from codey_gateway.content import Content, ContentListUnion, GenerateContentConfig, GenerateContentRequest, Part, Tool
from codey_gateway.core.errors import SchemaFormatError
from codey_gateway.core.settings import Settings, get_settings
from codey_gateway.providers.models import GatewayModel
from codey_gateway.providers.types import (
    ChatCompletionTool,
    ChatGenerationRequest,
    ChatMessage,
    GenerationSettings,
    ToolConfig,
    ToolFunctionDeclaration,
)

logger = logging.getLogger(__name__)

JSON_MIME_TYPE = "application/json"

# tool name -> {gateway argument name: local argument name}
TOOL_PARAMETER_RENAMES: dict[str, dict[str, str]] = {
    "read_file": {"file_path": "absolute_path"},
}

JSON_INSTRUCTION_TEMPLATE = """

⚠️ JSON_ONLY_MODE: CRITICAL OVERRIDE ⚠️

You are in JSON-ONLY response mode. Your response MUST be valid JSON only.

❌ NO conversational text
❌ NO explanations
❌ NO markdown
❌ NO code blocks
❌ NO "I understand..." or similar phrases

✅ ONLY: Raw JSON object starting with {{ and ending with }}

REQUIRED SCHEMA:
{schema}

FINAL WARNING: Any non-JSON content will cause system failure. Respond with JSON immediately.
"""


def _lower_types(node: Any) -> Any:
    if isinstance(node, list):
        return [_lower_types(item) for item in node]
    if isinstance(node, dict):
        result: dict[str, Any] = {}
        for key, value in node.items():
            if key == "type" and isinstance(value, str):
                result[key] = value.lower()
            elif isinstance(value, (dict, list)):
                result[key] = _lower_types(value)
            else:
                result[key] = value
        return result
    return node


def normalize_parameter_schema(schema: dict[str, Any] | None) -> dict[str, Any] | None:
    """Lower-case every string ``type`` in a JSON schema, at any depth.

    The input is deep-copied first and never mutated.
    """
    if not schema:
        return schema
    return _lower_types(copy.deepcopy(schema))


def map_tool_parameters(tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
    mapped = dict(args)
    for source, target in TOOL_PARAMETER_RENAMES.get(tool_name, {}).items():
        if source in mapped:
            mapped[target] = mapped.pop(source)
    return mapped


def to_content(content: Any) -> Content:
    if isinstance(content, Content):
        return content
    if isinstance(content, str):
        return Content(role="user", parts=[Part.from_text(content)])
    if isinstance(content, Part):
        return Content(role="user", parts=[content])
    if isinstance(content, list):
        return Content(
            role="user",
            parts=[Part.from_text(item) if isinstance(item, str) else Part.model_validate(item) for item in content],
        )
    if isinstance(content, dict):
        if "parts" in content:
            return Content.model_validate(content)
        return Content(role="user", parts=[Part.model_validate(content)])
    raise TypeError(f"Unsupported content type: {type(content).__name__}")


def to_contents(contents: ContentListUnion) -> list[Content]:
    if isinstance(contents, list):
        return [to_content(item) for item in contents]
    return [to_content(contents)]


def _part_to_text(part: Part) -> str:
    if part.function_call is not None:
        return json.dumps({"functionCall": part.function_call.model_dump(by_alias=True, exclude_none=True)})
    if part.function_response is not None:
        return json.dumps({"functionResponse": part.function_response.model_dump(by_alias=True, exclude_none=True)})
    return part.text or ""


def content_to_text(content: Any) -> str:
    """Flatten caller content into the plain text a gateway message carries.

    Parts of one content join with a space, and a list of contents joins with
    a newline. Function-call and function-response parts are written as
    their inline JSON form so the model still sees them.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, Part):
        return _part_to_text(content)
    if isinstance(content, Content):
        return " ".join(_part_to_text(part) for part in content.parts)
    if isinstance(content, list):
        return "\n".join(content_to_text(item) for item in content)
    return json.dumps(content, default=str)


def convert_tools(tools: list[Tool] | None) -> list[ChatCompletionTool]:
    gateway_tools: list[ChatCompletionTool] = []
    for tool in tools or []:
        for declaration in tool.function_declarations or []:
            schema = declaration.parameters_json_schema
            if schema is None:
                schema = declaration.parameters
            gateway_tools.append(
                ChatCompletionTool(
                    type="function",
                    function=ToolFunctionDeclaration(
                        name=declaration.name or "",
                        description=declaration.description or "",
                        parameters=normalize_parameter_schema(schema) or {},
                    ),
                )
            )
    return gateway_tools


def response_schema(config: GenerateContentConfig) -> dict[str, Any] | None:
    """Return the structured-output schema when JSON output was requested."""
    if config.response_mime_type != JSON_MIME_TYPE or not config.response_json_schema:
        return None

    schema: Any = config.response_json_schema
    if isinstance(schema, str):
        try:
            schema = json.loads(schema)
        except json.JSONDecodeError as exc:
            logger.warning("%s", SchemaFormatError(f"Ignoring response schema that is not valid JSON: {exc}"))
            return None
    if not isinstance(schema, dict):
        logger.warning("%s", SchemaFormatError("Ignoring response schema that is not a JSON object"))
        return None
    return schema


def build_response_format(config: GenerateContentConfig, model: GatewayModel) -> dict[str, Any] | None:
    if not model.supports_structured_output:
        return None
    schema = response_schema(config)
    if schema is None:
        return None
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "response_schema",
            "strict": True,
            "schema": {**normalize_parameter_schema(schema), "additionalProperties": False},
        },
    }


def maybe_insert_json_instructions(
    config: GenerateContentConfig,
    model: GatewayModel,
    message_content: str,
    is_last_message: bool,
) -> str:
    if model.supports_structured_output or not is_last_message:
        return message_content
    schema = response_schema(config)
    if schema is None:
        return message_content
    return message_content + JSON_INSTRUCTION_TEMPLATE.format(schema=json.dumps(schema, indent=2))


def build_generation_settings(
    config: GenerateContentConfig, model: GatewayModel, settings: Settings
) -> GenerationSettings:
    return GenerationSettings(
        max_tokens=config.max_output_tokens if config.max_output_tokens is not None else model.max_output_tokens,
        temperature=config.temperature if config.temperature is not None else settings.default_temperature,
        stop_sequences=config.stop_sequences,
        top_p=config.top_p,
        top_k=config.top_k,
        seed=config.seed,
        presence_penalty=config.presence_penalty,
        frequency_penalty=config.frequency_penalty,
    )


def translate_request(
    request: GenerateContentRequest,
    model: GatewayModel,
    settings: Settings | None = None,
) -> ChatGenerationRequest:
    settings = settings or get_settings()
    config = request.config
    messages: list[ChatMessage] = []

    if config.system_instruction:
        messages.append(ChatMessage(role="system", content=content_to_text(config.system_instruction)))

    contents = to_contents(request.contents)
    for position, content in enumerate(contents):
        role = "assistant" if content.role == "model" else "user"
        text = content_to_text(content)
        if role == "user":
            text = maybe_insert_json_instructions(config, model, text, position == len(contents) - 1)
        messages.append(ChatMessage(role=role, content=text))

    tools = convert_tools(config.tools)
    return ChatGenerationRequest(
        model=model.model,
        messages=messages,
        generation_settings=build_generation_settings(config, model, settings),
        tools=tools or None,
        tool_config=ToolConfig(mode="auto", parallel_calls=True) if tools else None,
        response_format=build_response_format(config, model),
    )

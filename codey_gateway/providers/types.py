from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

Role = Literal["system", "user", "assistant", "tool"]

T = TypeVar("T")


class WireModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ChatMessage(WireModel):
    role: Role
    content: str
    name: str | None = None
    tool_call_id: str | None = None


class GenerationSettings(WireModel):
    max_tokens: int | None = None
    temperature: float | None = None
    stop_sequences: list[str] | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    seed: int | None = None


class ToolFunctionDeclaration(WireModel):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class ChatCompletionTool(WireModel):
    type: str = "function"
    function: ToolFunctionDeclaration | None = None


class AllowedTool(WireModel):
    type: str
    name: str


class ToolConfig(WireModel):
    mode: Literal["auto", "none", "tool", "any"] = "auto"
    allowed_tools: list[AllowedTool] | None = None
    parallel_calls: bool | None = None


class ChatGenerationRequest(WireModel):
    model: str
    messages: list[ChatMessage]
    generation_settings: GenerationSettings | None = None
    tools: list[ChatCompletionTool] | None = None
    tool_config: ToolConfig | None = None
    response_format: dict[str, Any] | None = None
    system_prompt_strategy: str | None = None
    turn_id: str | None = None
    enable_pii_masking: bool | None = None


class GenerationRequest(WireModel):
    prompt: str
    model: str
    num_generations: int | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    stop_sequences: list[str] | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    enable_pii_masking: bool | None = None
    parameters: dict[str, Any] | None = None


class EmbeddingRequest(WireModel):
    input: list[str]
    model: str | None = None
    enable_pii_masking: bool | None = None
    parameters: dict[str, Any] | None = None


class FeedbackRequest(WireModel):
    id: str
    generation_id: str
    feedback: Literal["GOOD", "BAD"] | None = None
    feedback_text: str | None = None
    source: str | None = None
    app_feedback: dict[str, Any] | None = None
    app_generation_id: str | None = None
    app_generation: str | None = None
    turn_id: str | None = None


class ToolInvocationFunction(WireModel):
    name: str = ""
    arguments: str = ""

    @field_validator("name", "arguments", mode="before")
    @classmethod
    def coerce_nulls(cls, value: Any) -> Any:
        return "" if value is None else value


class ToolInvocation(WireModel):
    id: str = ""
    function: ToolInvocationFunction = Field(default_factory=ToolInvocationFunction)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_nulls(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def starts_call(self) -> bool:
        return bool(self.id and self.function.name)


class ChatGeneration(WireModel):
    content: str = ""
    role: str = "assistant"
    parameters: dict[str, Any] | None = None
    tool_invocations: list[ToolInvocation] | None = None

    @field_validator("content", "role", mode="before")
    @classmethod
    def coerce_nulls(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def finish_reason(self) -> str | None:
        if not self.parameters:
            return None
        reason = self.parameters.get("finish_reason")
        return reason if isinstance(reason, str) else None

    @property
    def has_tool_invocations(self) -> bool:
        return bool(self.tool_invocations)


class GenerationDetails(WireModel):
    generations: list[ChatGeneration] = Field(default_factory=list)
    parameters: dict[str, Any] | None = None


class ChatGenerations(WireModel):
    """Chat response body, or one chunk of a chat stream."""

    id: str = ""
    generation_details: GenerationDetails | None = None

    _sentinel: bool = PrivateAttr(default=False)

    @classmethod
    def sentinel(cls) -> ChatGenerations:
        chunk = cls(
            id="",
            generation_details=GenerationDetails(
                generations=[
                    ChatGeneration(
                        content="",
                        role="assistant",
                        tool_invocations=[],
                        parameters={"finish_reason": "stop"},
                    )
                ]
            ),
        )
        chunk._sentinel = True
        return chunk

    @property
    def is_sentinel(self) -> bool:
        return self._sentinel

    @property
    def generations(self) -> list[ChatGeneration]:
        if self.generation_details is None:
            return []
        return self.generation_details.generations

    @property
    def usage(self) -> dict[str, Any] | None:
        if self.generation_details is None or not self.generation_details.parameters:
            return None
        usage = self.generation_details.parameters.get("usage")
        return usage if isinstance(usage, dict) and usage else None


class CompletionGeneration(WireModel):
    text: str = ""


class Generations(WireModel):
    """Plain completion response body, or one chunk of a completion stream."""

    id: str = ""
    generations: list[CompletionGeneration] = Field(default_factory=list)

    _sentinel: bool = PrivateAttr(default=False)

    @classmethod
    def sentinel(cls) -> Generations:
        chunk = cls(id="", generations=[])
        chunk._sentinel = True
        return chunk

    @property
    def is_sentinel(self) -> bool:
        return self._sentinel


class GatewayResponse(BaseModel, Generic[T]):
    data: T
    status: int
    headers: dict[str, str] = Field(default_factory=dict)

"""Caller-facing content model.

Mirrors the candidate/content shape the tool-execution loop consumes:
contents made of parts, candidates with a finish reason, and usage
metadata. Field names serialize in camelCase.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class FunctionCall(CamelModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class FunctionResponse(CamelModel):
    name: str
    response: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class Part(CamelModel):
    model_config = ConfigDict(extra="forbid")

    text: str | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None

    @classmethod
    def from_text(cls, text: str) -> Part:
        return cls(text=text)

    @classmethod
    def from_function_call(cls, name: str, args: dict[str, Any] | None = None, id: str | None = None) -> Part:
        return cls(function_call=FunctionCall(name=name, args=args or {}, id=id))


class Content(CamelModel):
    model_config = ConfigDict(extra="forbid")

    role: str = "user"
    parts: list[Part] = Field(default_factory=list)


ContentUnion = Union[Content, Part, str]
ContentListUnion = Union[list[ContentUnion], ContentUnion]


class FinishReason(str, Enum):
    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    SAFETY = "SAFETY"
    RECITATION = "RECITATION"


class Candidate(CamelModel):
    content: Content = Field(default_factory=lambda: Content(role="model"))
    index: int = 0
    finish_reason: FinishReason | None = None
    safety_ratings: list[dict[str, Any]] = Field(default_factory=list)


class FunctionDeclaration(CamelModel):
    name: str = ""
    description: str = ""
    parameters_json_schema: dict[str, Any] | None = None
    parameters: dict[str, Any] | None = None


class Tool(CamelModel):
    function_declarations: list[FunctionDeclaration] | None = None


class GenerateContentConfig(CamelModel):
    system_instruction: ContentListUnion | None = None
    tools: list[Tool] | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    stop_sequences: list[str] | None = None
    top_p: float | None = None
    top_k: int | None = None
    seed: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    response_mime_type: str | None = None
    response_json_schema: dict[str, Any] | str | None = None


class GenerateContentRequest(CamelModel):
    model: str | None = None
    contents: ContentListUnion
    config: GenerateContentConfig = Field(default_factory=GenerateContentConfig)


class UsageMetadata(CamelModel):
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0


class GenerateContentResponse(CamelModel):
    candidates: list[Candidate] = Field(default_factory=list)
    usage_metadata: UsageMetadata = Field(default_factory=UsageMetadata)
    model_version: str | None = None

    @property
    def text(self) -> str:
        return "".join(
            part.text
            for candidate in self.candidates
            for part in candidate.content.parts
            if part.text is not None
        )

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [
            part.function_call
            for candidate in self.candidates
            for part in candidate.content.parts
            if part.function_call is not None
        ]

    @property
    def finish_reason(self) -> FinishReason | None:
        for candidate in self.candidates:
            if candidate.finish_reason is not None:
                return candidate.finish_reason
        return None


class EmbedContentRequest(CamelModel):
    model: str | None = None
    contents: ContentListUnion


class ContentEmbedding(CamelModel):
    values: list[float] = Field(default_factory=list)


class EmbedContentResponse(CamelModel):
    embeddings: list[ContentEmbedding] = Field(default_factory=list)


class CountTokensResponse(CamelModel):
    total_tokens: int = 0

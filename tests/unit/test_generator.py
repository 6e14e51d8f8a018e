import json

import httpx
import pytest

from codey_gateway.content import EmbedContentRequest, FinishReason, GenerateContentRequest
from codey_gateway.core.cancellation import CancellationToken
from codey_gateway.core.errors import OperationCancelledError
from codey_gateway.providers.client import GatewayClient
from codey_gateway.providers.generator import GatewayContentGenerator
from codey_gateway.providers.merge import merge_chat_chunks
from codey_gateway.providers.models import CLAUDE_4_SONNET, QWEN
from codey_gateway.providers.types import ChatGenerations


def chunk(generations: list[dict], usage: dict | None = None, id: str = "g1") -> ChatGenerations:
    details: dict = {"generations": generations}
    if usage is not None:
        details["parameters"] = {"usage": usage}
    return ChatGenerations.model_validate({"id": id, "generation_details": details})


def tool(id: str, name: str, arguments: str) -> dict:
    return {"tool_invocations": [{"id": id, "function": {"name": name, "arguments": arguments}}]}


async def _aiter(items):
    for item in items:
        yield item


def _generator(settings, credentials, model=CLAUDE_4_SONNET, handler=None, mock_http=None) -> GatewayContentGenerator:
    http = mock_http(handler) if handler else None
    client = GatewayClient(settings, model, credentials, http_client=http)
    return GatewayContentGenerator(settings, model, client)


async def _translate(generator: GatewayContentGenerator, chunks, cancel=None) -> list:
    return [response async for response in generator.translate_stream(_aiter(chunks), cancel=cancel)]


async def test_stream_text_then_stop(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(
        generator,
        [
            chunk([{"content": "Hel"}]),
            chunk([{"content": "lo"}]),
            chunk([{"content": ""}], usage={"inputTokens": 4, "outputTokens": 2, "totalTokens": 6}),
            ChatGenerations.sentinel(),
        ],
    )

    assert [r.text for r in responses] == ["Hel", "lo", "", ""]
    assert responses[2].finish_reason is FinishReason.STOP
    assert responses[2].usage_metadata.total_token_count == 6
    assert responses[3].usage_metadata.prompt_token_count == 4
    assert all(r.model_version == CLAUDE_4_SONNET.model for r in responses)


async def test_done_completes_pending_tool_call_then_stops(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(
        generator,
        [
            chunk([tool("c1", "read_file", '{"file_')]),
            chunk([tool("", "", 'path": "/a.txt"}')]),
            ChatGenerations.sentinel(),
        ],
    )

    assert responses[0].candidates == []
    assert responses[1].candidates == []
    call_candidate, stop_candidate = responses[2].candidates
    [call] = [part.function_call for part in call_candidate.content.parts]
    assert (call.name, call.args, call.id) == ("read_file", {"absolute_path": "/a.txt"}, "c1")
    assert stop_candidate.finish_reason is FinishReason.STOP
    assert stop_candidate.content.parts == []
    assert len(responses) == 3


async def test_text_chunk_completes_tool_call_in_same_candidate(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(generator, [chunk([tool("c1", "ls", "{}")]), chunk([{"content": "done"}])])

    [candidate] = responses[1].candidates
    assert candidate.content.parts[0].function_call.name == "ls"
    assert candidate.content.parts[1].text == "done"


async def test_whitespace_text_is_streamed(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(generator, [chunk([{"content": "a"}]), chunk([{"content": " "}]), chunk([{"content": "b"}])])
    assert "".join(r.text for r in responses) == "a b"


async def test_stream_ending_mid_tool_call_still_emits_call(settings, credentials, caplog) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(generator, [chunk([tool("c1", "ls", '{"dir": "/"}')])])

    assert len(responses) == 2
    assert responses[-1].function_calls[0].args == {"dir": "/"}
    assert "incomplete tool call" in caplog.text


async def test_inline_function_calls_are_extracted_from_stream(settings, credentials) -> None:
    generator = _generator(settings, credentials, model=QWEN)
    text = 'Let me look. {"functionCall": {"name": "read_file", "args": {"file_path": "/b"}}}'
    chunks = [chunk([{"content": text[i : i + 5]}]) for i in range(0, len(text), 5)]
    responses = await _translate(generator, chunks)

    calls = [call for r in responses for call in r.function_calls]
    assert [(c.name, c.args) for c in calls] == [("read_file", {"absolute_path": "/b"})]
    assert "".join(r.text for r in responses) == "Let me look. "


async def test_inline_accumulator_resets_on_new_generation_id(settings, credentials) -> None:
    generator = _generator(settings, credentials, model=QWEN)
    responses = await _translate(
        generator,
        [
            chunk([{"content": '{"functionCall": {"name": '}], id="first"),
            chunk([{"content": "fresh"}], id="second"),
        ],
    )
    assert "".join(r.text for r in responses) == "fresh"
    assert all(not r.function_calls for r in responses)


async def test_translate_stream_honours_cancellation(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    cancel = CancellationToken()
    stream = generator.translate_stream(_aiter([chunk([{"content": "a"}]), chunk([{"content": "b"}])]), cancel=cancel)

    first = await stream.__anext__()
    assert first.text == "a"
    cancel.cancel()
    with pytest.raises(OperationCancelledError):
        await stream.__anext__()


async def test_generate_content_non_streaming(settings, credentials, mock_http) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": "g1",
                "generation_details": {
                    "generations": [{"content": "Hi there", "parameters": {"finish_reason": "stop"}}],
                    "parameters": {"usage": {"input_tokens": 3, "output_tokens": 2, "total_tokens": 5}},
                },
            },
        )

    generator = _generator(settings, credentials, handler=handler, mock_http=mock_http)
    response = await generator.generate_content(GenerateContentRequest(contents="Hello"))

    assert response.text == "Hi there"
    assert response.finish_reason is FinishReason.STOP
    assert response.usage_metadata.total_token_count == 5
    assert seen[0].url.path.endswith("/chat/generations")
    assert (await generator.count_tokens()).total_tokens == 5


async def test_streaming_only_model_merges_stream(settings, credentials, mock_http, sse_body) -> None:
    body = sse_body(
        (None, {"id": "g1", "generation_details": {"generations": [{"content": "Hel"}]}}),
        (None, {"id": "g1", "generation_details": {"generations": [{"content": "lo"}]}}),
        (None, {"id": "g1", "generation_details": {"generations": [{"content": ""}], "parameters": {"usage": {"totalTokens": 7}}}}),
        (None, "[DONE]"),
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=body)

    generator = _generator(settings, credentials, model=QWEN, handler=handler, mock_http=mock_http)
    response = await generator.generate_content(GenerateContentRequest(contents="Hello"))

    assert seen[0].url.path.endswith("/chat/generations/stream")
    assert response.text == "Hello"
    assert response.finish_reason is FinishReason.STOP
    assert response.usage_metadata.total_token_count == 7


async def test_merged_stream_matches_single_response(settings, credentials) -> None:
    pieces = ["The ", "answer ", "is 42."]
    streamed = [chunk([{"content": p}]) for p in pieces]
    streamed.append(chunk([{"content": "", "parameters": {"finish_reason": "stop"}}], usage={"totalTokens": 9}))
    single = chunk([{"content": "".join(pieces), "parameters": {"finish_reason": "stop"}}], usage={"totalTokens": 9})

    left = _generator(settings, credentials).translate_response(merge_chat_chunks(streamed))
    right = _generator(settings, credentials).translate_response(single)
    assert left == right


async def test_embed_content_returns_first_vector(settings, credentials, mock_http) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"embeddings": [{"values": [0.1, 0.2]}]})

    generator = _generator(settings, credentials, handler=handler, mock_http=mock_http)
    response = await generator.embed_content(EmbedContentRequest(contents="embed me"))

    assert response.embeddings[0].values == [0.1, 0.2]
    assert json.loads(seen[0].content)["input"] == ["embed me"]


async def test_done_after_length_does_not_end_the_turn_twice(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(
        generator,
        [
            chunk([{"content": "partial"}]),
            chunk([{"content": "", "parameters": {"finish_reason": "length"}}]),
            chunk([{"content": ""}], usage={"inputTokens": 2, "outputTokens": 9, "totalTokens": 11}),
            ChatGenerations.sentinel(),
        ],
    )

    reasons = [c.finish_reason for r in responses for c in r.candidates if c.finish_reason is not None]
    assert reasons == [FinishReason.MAX_TOKENS]
    assert responses[-1].usage_metadata.total_token_count == 11


async def test_done_after_finish_still_completes_pending_tool_call(settings, credentials) -> None:
    generator = _generator(settings, credentials)
    responses = await _translate(
        generator,
        [
            chunk([{"content": "", "parameters": {"finish_reason": "stop"}, **tool("c1", "ls", '{"dir": "/"}')}]),
            ChatGenerations.sentinel(),
        ],
    )

    reasons = [c.finish_reason for r in responses for c in r.candidates if c.finish_reason is not None]
    assert reasons == [FinishReason.STOP]
    [call] = responses[-1].function_calls
    assert (call.name, call.args) == ("ls", {"dir": "/"})

import json
from typing import Any

import httpx


def chat_completion(content: str | None = None, tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls

    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4",
        "choices": [{"index": 0, "finish_reason": "tool_calls" if tool_calls else "stop", "message": message}],
    }


def tool_call(name: str, arguments: str, call_id: str = "call_1") -> dict[str, Any]:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def chat_completion_stream(*contents: str) -> httpx.Response:
    events: list[str] = []

    for content in contents:
        chunk = {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "created": 0,
            "model": "gpt-4",
            "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": None}],
        }
        events.append(f"data: {json.dumps(chunk)}\n\n")

    events.append("data: [DONE]\n\n")

    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content="".join(events).encode())


class RecordingHandler:
    """Serves scripted responses in order and records the JSON bodies of the requests."""

    responses: list[httpx.Response]
    bodies: list[dict[str, Any]]
    paths: list[str]

    def __init__(self, *responses: httpx.Response | dict[str, Any]):
        self.responses = [response if isinstance(response, httpx.Response) else httpx.Response(200, json=response) for response in responses]
        self.bodies = []
        self.paths = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        if request.content:
            self.bodies.append(json.loads(request.content))

        return self.responses.pop(0)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

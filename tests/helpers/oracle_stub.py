"""Test helpers to stub the document extraction oracle and the OpenAI client.

``ScriptedOracle`` satisfies ``statement_ingest.extraction.ExtractionOracle``
and replays a canned reply. ``AsyncOpenAIStub`` mimics the slice of
``openai.AsyncOpenAI`` used by ``OpenAIExtractionOracle`` and records each
``responses.create`` call's kwargs for lightweight assertions.
"""

from __future__ import annotations

from typing import Any


class ScriptedOracle:
    def __init__(self, reply: str | BaseException) -> None:
        self._reply = reply
        self.calls: list[tuple[bytes, str]] = []

    async def extract(self, content: bytes, media_type: str) -> str:
        self.calls.append((content, media_type))
        if isinstance(self._reply, BaseException):
            raise self._reply
        return self._reply


class _Response:
    def __init__(self, text: str) -> None:
        self.output_text = text


class AsyncOpenAIStub:
    def __init__(self, reply: str | BaseException, calls_out: list[dict[str, Any]]) -> None:
        outer_reply = reply

        class _Responses:
            async def create(self, **kwargs: Any) -> _Response:
                calls_out.append(kwargs)
                if isinstance(outer_reply, BaseException):
                    raise outer_reply
                return _Response(outer_reply)

        self.responses = _Responses()

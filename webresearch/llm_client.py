"""Client factory for an OpenAI-compatible chat-completion backend.

The default target is a local llama.cpp server, but any endpoint that speaks
``/chat/completions`` (OpenAI, DeepSeek, Ollama's compatibility layer) works.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from webresearch.config import settings


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class TextBlock:
    type: str
    text: str


@dataclass
class MessageResponse:
    content: list[TextBlock]
    usage: Usage

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if block.text).strip()


class ChatMessagesAdapter:
    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _to_openai_messages(system: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        openai_messages: list[dict[str, Any]] = []
        if system:
            openai_messages.append({"role": "system", "content": system})
        for message in messages:
            openai_messages.append({"role": message["role"], "content": str(message["content"])})
        return openai_messages

    @staticmethod
    def _from_openai_response(response: Any) -> MessageResponse:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ValueError("Chat response contained no choices")

        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None)
        content: list[TextBlock] = []
        if isinstance(text, str) and text:
            content.append(TextBlock(type="text", text=text))

        usage = getattr(response, "usage", None)
        mapped_usage = Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        return MessageResponse(content=content, usage=mapped_usage)

    async def create(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
        temperature: float = 0.0,
    ) -> MessageResponse:
        response = await self._client.chat.completions.create(
            model=model,
            messages=self._to_openai_messages(system, messages),
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return self._from_openai_response(response)


class ChatClientAdapter:
    def __init__(self, openai_client: Any):
        self.messages = ChatMessagesAdapter(openai_client)


def get_client() -> ChatClientAdapter:
    """Build a chat client through the OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    openai_client = AsyncOpenAI(
        api_key=settings.llm_api_key or "not-needed",
        base_url=settings.llm_base_url.strip() or "http://localhost:8080/v1",
        max_retries=0,
    )
    return ChatClientAdapter(openai_client)


def get_model() -> str:
    return settings.llm_model


_client: ChatClientAdapter | None = None


def client() -> ChatClientAdapter:
    """Get or create the shared chat client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client

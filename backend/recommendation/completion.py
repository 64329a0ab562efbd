"""Completion client used by every LLM-backed pipeline stage."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Protocol

import openai
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from recommendation.errors import UpstreamAPIError

logger = logging.getLogger(__name__)

JSON_SYSTEM_PROMPT = "Respond ONLY with valid JSON."


class CompletionClient(Protocol):
    async def complete(
        self, *, model: str, prompt: str, temperature: float, max_tokens: int
    ) -> str:
        """Return the raw text of one structured-output completion."""
        ...

    def stream(
        self,
        *,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        """Yield text chunks of one free-form completion."""
        ...


def _content_to_text(content: Any) -> str:
    # Some providers return content as a list of blocks; extract their text.
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return content or ""


def _to_langchain_messages(messages: list[dict[str, str]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


def _translate_provider_error(exc: openai.APIError) -> UpstreamAPIError:
    status = getattr(exc, "status_code", None)
    if status is not None:
        message = f"AI service error ({status}): {exc.message}"
    else:
        message = f"AI service error: {exc.message}"
    return UpstreamAPIError(message, status=status)


class OpenAICompletionClient:
    """``CompletionClient`` backed by LangChain's ``ChatOpenAI``.

    The API key is read once at construction and shared by every call made
    through this client.  Retries are disabled: each phase has its own
    deadline and a retry would silently eat into it.
    """

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def _get_llm(
        self, model: str, temperature: float, max_tokens: int, *, json_mode: bool
    ) -> ChatOpenAI:
        kwargs: dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "api_key": self._api_key,
            "max_retries": 0,
        }
        if json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        return ChatOpenAI(**kwargs)

    async def complete(
        self, *, model: str, prompt: str, temperature: float, max_tokens: int
    ) -> str:
        llm = self._get_llm(model, temperature, max_tokens, json_mode=True)
        messages = [
            SystemMessage(content=JSON_SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]
        try:
            response = await llm.ainvoke(messages)
        except openai.APIError as exc:
            raise _translate_provider_error(exc) from exc
        return _content_to_text(response.content)

    async def stream(
        self,
        *,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        llm = self._get_llm(model, temperature, max_tokens, json_mode=False)
        try:
            async for chunk in llm.astream(_to_langchain_messages(messages)):
                text = _content_to_text(chunk.content)
                if text:
                    yield text
        except openai.APIError as exc:
            raise _translate_provider_error(exc) from exc

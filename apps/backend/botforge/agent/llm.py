from __future__ import annotations

from functools import lru_cache
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI


def _to_message(x: Any) -> BaseMessage:
    if isinstance(x, BaseMessage):
        return x
    if isinstance(x, dict):
        role = (x.get("role") or "user").lower()
        content = str(x.get("content", ""))
        if role == "system":
            return SystemMessage(content=content)
        if role in ("assistant", "ai"):
            return AIMessage(content=content)
        return HumanMessage(content=content)
    return HumanMessage(content=str(x))


def normalize_messages(messages: list[Any]) -> list[BaseMessage]:
    return [_to_message(m) for m in (messages or [])]


def build_messages(prompt: str, system_instructions: str = "") -> list[BaseMessage]:
    messages: list[Any] = []
    if system_instructions:
        messages.append({"role": "system", "content": system_instructions})
    messages.append(prompt)
    return normalize_messages(messages)


def message_text(message: Any) -> str:
    """Flatten a chat message's content (plain string or content parts) to text."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return "" if content is None else str(content)


@lru_cache(maxsize=8)
def make_llm(model: str, max_tokens: int, timeout: float, temperature: float = 0.2) -> ChatOpenAI:
    # retries are the orchestrator's job; the client must fail fast
    return ChatOpenAI(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
        max_retries=0,
    )

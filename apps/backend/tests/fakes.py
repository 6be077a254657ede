from __future__ import annotations

import asyncio
from typing import Any

import httpx
import openai
from langchain_core.messages import AIMessage

from botforge.agent.orchestrator import GenerationResponse
from botforge.bot.columns import HEADER, join_row

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def status_error(cls: type, status: int, headers: dict[str, str] | None = None) -> Exception:
    response = httpx.Response(status, headers=headers or {}, request=httpx.Request("POST", OPENAI_URL))
    return cls(f"status {status}", response=response, body=None)


class FakeLLM:
    """Stands in for a chat model: returns text, raises, or hangs."""

    def __init__(self, behavior: Any, finish_reason: str = "stop") -> None:
        self.behavior = behavior
        self.finish_reason = finish_reason
        self.calls: list[Any] = []

    async def ainvoke(self, messages: Any) -> AIMessage:
        self.calls.append(messages)
        if self.behavior == "hang":
            await asyncio.sleep(30)
        if isinstance(self.behavior, BaseException):
            raise self.behavior
        return AIMessage(content=str(self.behavior), response_metadata={"finish_reason": self.finish_reason})


class FakeFactory:
    """llm_factory that hands out one FakeLLM per tier, in order."""

    def __init__(self, *llms: FakeLLM) -> None:
        self.llms = list(llms)
        self.requested: list[tuple[str, int, float]] = []

    def __call__(self, model: str, max_tokens: int, timeout: float, temperature: float = 0.2) -> FakeLLM:
        self.requested.append((model, max_tokens, timeout))
        return self.llms[len(self.requested) - 1]


class FakeOrchestrator:
    """Replays canned responses for `call_or_raise`; raises if it runs out."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    async def call_or_raise(self, prompt: str, system_instructions: str = "", attempt_budget: Any = None):
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("unexpected generation call")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return GenerationResponse(text=item, model="fake", tier_index=0, attempts=1)


def action_row(num: int, next_num: int) -> list[str]:
    cells = [""] * 26
    cells[0] = str(num)
    cells[1] = "A"
    cells[2] = f"Store {num}"
    cells[13] = "SysAssignVariable"
    cells[17] = '{"set":{"STEP":"' + str(num) + '"}}'
    cells[18] = "success"
    cells[19] = f"true~{next_num}|error~99990"
    return cells


def decision_row(num: int, next_num: int, nlu_disabled: bool = False) -> list[str]:
    cells = [""] * 26
    cells[0] = str(num)
    cells[1] = "D"
    cells[2] = f"Ask {num}"
    cells[6] = "1" if nlu_disabled else ""
    cells[7] = str(next_num)
    cells[8] = f"Question {num}, please answer"
    cells[9] = "button"
    cells[10] = f"Yes~{next_num}|Talk to Agent~999"
    cells[11] = "1"
    return cells


def build_artifact(count: int, start: int = 200, nlu_node: int | None = None) -> str:
    """A table of `count` alternating decision/action rows numbered from `start`."""
    lines = [HEADER]
    for i in range(count):
        num = start + i
        if i % 2 == 0:
            lines.append(join_row(decision_row(num, num + 1, nlu_disabled=num == nlu_node)))
        else:
            lines.append(join_row(action_row(num, num + 1)))
    return "\n".join(lines)

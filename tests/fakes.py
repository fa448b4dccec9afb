"""
Test doubles for the model and capability services.

ScriptedChatModel replays a fixed list of responses in call order across
every node that uses it, so a whole run can be scripted up front.
"""
import json
from typing import Any, Dict, List

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from langchain_core.tools import StructuredTool
from pydantic import Field

from showpicks.orchestration.services import WorkflowServices
from showpicks.orchestration.state import GRADE_TOOL_NAME

SNIPPETS = [
    {"title": "Dark", "url": "https://example.com/dark", "content": "German time-travel mystery on Netflix"},
    {"title": "The Expanse", "url": "https://example.com/expanse", "content": "Political space opera on Prime Video"},
    {"title": "Westworld", "url": "https://example.com/westworld", "content": "Layered AI drama on Max"},
    {"title": "Severance", "url": "https://example.com/severance", "content": "Workplace thriller on Apple TV+"},
    {"title": "Devs", "url": "https://example.com/devs", "content": "Quantum computing thriller on Hulu"},
]

ANSWER = "\n".join([
    "1. Dark on Netflix",
    "2. The Expanse on Amazon Prime Video",
    "3. Westworld on Max",
    "4. Severance on Apple TV+",
])


def _tool_name(tool) -> str:
    if isinstance(tool, dict):
        return tool.get("function", tool).get("name")
    return tool.name


class ScriptedChatModel(BaseChatModel):
    responses: List[Any] = Field(default_factory=list)
    received: List[Any] = Field(default_factory=list)
    bindings: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def _next(self, messages) -> ChatResult:
        self.received.append(list(messages))
        if not self.responses:
            raise AssertionError("scripted model ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            response = AIMessage(content=response)
        return ChatResult(generations=[ChatGeneration(message=response)])

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return self._next(messages)

    async def _agenerate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return self._next(messages)

    def bind_tools(self, tools, *, tool_choice=None, **kwargs):
        self.bindings.append({"tools": [_tool_name(t) for t in tools], "tool_choice": tool_choice})
        return self


def tool_call(name: str = "web_search", args: dict | None = None, call_id: str = "call_1") -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[{"name": name, "args": args if args is not None else {"query": "complex sci-fi tv shows"}, "id": call_id}],
    )


def grade(score, explanation: str = "covers the request") -> AIMessage:
    return tool_call(GRADE_TOOL_NAME, {"score": score, "explanation": explanation}, call_id="grade_1")


def make_search_tool(results=None, error: Exception | None = None, name: str = "web_search", calls: list | None = None):
    async def _search(query: str) -> str:
        if calls is not None:
            calls.append(query)
        if error is not None:
            raise error
        return json.dumps(results if results is not None else SNIPPETS)

    return StructuredTool.from_function(coroutine=_search, name=name, description=f"fake {name}")


def make_services(responses, tools=None, **overrides) -> WorkflowServices:
    model = ScriptedChatModel(responses=list(responses))
    return WorkflowServices(
        chat_model=model,
        tools=tools if tools is not None else [make_search_tool()],
        **overrides,
    )

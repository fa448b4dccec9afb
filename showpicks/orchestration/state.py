"""
Conversation state shared by every node of a run.

The state is an append-only log of typed messages. Order is the only
ordering signal: the first message is always the original user request and
the last message is always the output of the most recent node.
"""
import json
import uuid
from dataclasses import dataclass, field
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Sequence, Tuple, TypedDict, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from showpicks.core.errors import PreconditionError

# tool name the grader binds; its messages are internal control traffic
GRADE_TOOL_NAME = "give_relevance_score"

# node names, recorded on the messages each node produces
AGENT = "agent"
GRADER = "grade"
REFINER = "rewrite"
GENERATOR = "generate"


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCall:
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_call_id)


@dataclass(frozen=True)
class UserMessage:
    content: str
    role: ClassVar[str] = "user"


@dataclass(frozen=True)
class AssistantMessage:
    content: str
    name: Optional[str] = None
    role: ClassVar[str] = "assistant"


@dataclass(frozen=True)
class ToolRequestMessage:
    tool_calls: Tuple[ToolCall, ...]
    content: str = ""
    name: Optional[str] = None
    role: ClassVar[str] = "tool-request"


@dataclass(frozen=True)
class ToolResultMessage:
    content: str
    tool_call_id: str
    name: str
    is_error: bool = False
    role: ClassVar[str] = "tool-result"


Message = Union[UserMessage, AssistantMessage, ToolRequestMessage, ToolResultMessage]
MESSAGE_TYPES = (UserMessage, AssistantMessage, ToolRequestMessage, ToolResultMessage)


def append_messages(existing: Sequence[Message], new: Sequence[Message]) -> List[Message]:
    """Reducer for the messages channel: concatenation, nothing else."""
    for message in new:
        if not isinstance(message, MESSAGE_TYPES):
            raise TypeError(f"not a conversation message: {type(message).__name__}")
    return list(existing) + list(new)


class WorkflowState(TypedDict):
    messages: Annotated[List[Message], append_messages]


def initial_state(user_input: str) -> WorkflowState:
    return {"messages": [UserMessage(content=user_input)]}


def append(state: WorkflowState, messages: Sequence[Message]) -> WorkflowState:
    """Returns a new state; the given one is left untouched."""
    return {"messages": append_messages(state["messages"], messages)}


# ── Queries over the log ───────────────────────────────────────────────

def original_request(messages: Sequence[Message]) -> UserMessage:
    if not messages or not isinstance(messages[0], UserMessage):
        raise PreconditionError("a run must be seeded with exactly one user message")
    return messages[0]


def last_message(messages: Sequence[Message]) -> Message:
    if not messages:
        raise PreconditionError("conversation state is empty")
    return messages[-1]


def is_grading_message(message: Message) -> bool:
    return (
        isinstance(message, ToolRequestMessage)
        and bool(message.tool_calls)
        and message.tool_calls[0].name == GRADE_TOOL_NAME
    )


def without_grading_messages(messages: Sequence[Message]) -> List[Message]:
    return [m for m in messages if not is_grading_message(m)]


def latest_tool_results(messages: Sequence[Message]) -> List[ToolResultMessage]:
    """The most recent contiguous batch of tool results, oldest first."""
    end = None
    for index in range(len(messages) - 1, -1, -1):
        if isinstance(messages[index], ToolResultMessage):
            end = index
            break
    if end is None:
        return []
    start = end
    while start > 0 and isinstance(messages[start - 1], ToolResultMessage):
        start -= 1
    return list(messages[start:end + 1])


def count_refinements(messages: Sequence[Message]) -> int:
    return sum(
        1 for m in messages
        if isinstance(m, (AssistantMessage, ToolRequestMessage)) and m.name == REFINER
    )


def latest_query(messages: Sequence[Message]) -> str:
    """The most recent user-facing query: last refinement, else the original request."""
    for message in reversed(messages):
        if isinstance(message, (AssistantMessage, ToolRequestMessage)) and message.name == REFINER:
            return message.content
    return original_request(messages).content


# ── Model boundary ─────────────────────────────────────────────────────

def to_langchain(message: Message) -> BaseMessage:
    if isinstance(message, UserMessage):
        return HumanMessage(content=message.content)
    if isinstance(message, AssistantMessage):
        return AIMessage(content=message.content, name=message.name)
    if isinstance(message, ToolRequestMessage):
        return AIMessage(
            content=message.content,
            name=message.name,
            tool_calls=[
                {"name": call.name, "args": dict(call.arguments), "id": call.id}
                for call in message.tool_calls
            ],
        )
    if isinstance(message, ToolResultMessage):
        return ToolMessage(
            content=message.content,
            tool_call_id=message.tool_call_id,
            name=message.name,
            status="error" if message.is_error else "success",
        )
    raise TypeError(f"not a conversation message: {type(message).__name__}")


def _text_content(content: Any) -> str:
    # some providers return a list of content parts instead of a string
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def from_langchain(response: BaseMessage, name: str) -> Message:
    """Wraps a model response as the message a node appends."""
    content = _text_content(response.content)
    tool_calls = response.tool_calls if isinstance(response, AIMessage) else []
    if tool_calls:
        return ToolRequestMessage(
            tool_calls=tuple(
                ToolCall(name=call["name"], arguments=dict(call.get("args") or {}), id=call.get("id") or new_call_id())
                for call in tool_calls
            ),
            content=content,
            name=name,
        )
    return AssistantMessage(content=content, name=name)


# ── Serialization ──────────────────────────────────────────────────────

def message_to_dict(message: Message) -> Dict[str, Any]:
    data: Dict[str, Any] = {"role": message.role, "content": message.content}
    if isinstance(message, (AssistantMessage, ToolRequestMessage, ToolResultMessage)):
        data["name"] = message.name
    if isinstance(message, ToolRequestMessage):
        data["tool_calls"] = [
            {"name": call.name, "arguments": dict(call.arguments), "id": call.id}
            for call in message.tool_calls
        ]
    if isinstance(message, ToolResultMessage):
        data["tool_call_id"] = message.tool_call_id
        data["is_error"] = message.is_error
    return data


def serialize_state(state: WorkflowState) -> str:
    return json.dumps({"messages": [message_to_dict(m) for m in state["messages"]]}, indent=2, default=str)

"""
LLM-backed workflow nodes: agent, grader, refiner and generator.

Each node reads the conversation state, makes exactly one model call and
returns the single message it appends.
"""
import re
from dataclasses import dataclass
from typing import List, Optional

from langchain_core.messages import SystemMessage
from langchain_core.prompts import ChatPromptTemplate
from langsmith import traceable
from pydantic import BaseModel, Field

from showpicks.core.errors import MissingToolResultError, NodeInvocationError
from showpicks.core.telemetry import get_telemetry
from showpicks.orchestration.services import WorkflowServices
from showpicks.orchestration.state import (
    AGENT,
    GENERATOR,
    GRADE_TOOL_NAME,
    GRADER,
    REFINER,
    AssistantMessage,
    ToolCall,
    ToolRequestMessage,
    WorkflowState,
    from_langchain,
    latest_tool_results,
    original_request,
    to_langchain,
    without_grading_messages,
)
from showpicks.tools.search import WEB_SEARCH_TOOL_NAME

telemetry = get_telemetry('orchestration.nodes')


# ── 1. Recommendation Agent ────────────────────────────────────────────
AGENT_SYSTEM_PROMPT = """You are an expert TV show recommendation assistant.
Use the available tools to look up TV shows that match the user's preferences before answering.
When the conversation contains a refined version of the request, search again using the refined query.
Only answer without a tool call when the retrieved results already cover the request."""


@traceable(run_type="chain", name="Recommendation_Agent")
@telemetry.time_operation("agent")
async def agent_node(state: WorkflowState, services: WorkflowServices) -> dict:
    telemetry.log_info("---CALL AGENT (Recommendation Mode)---")
    # grading payloads are control traffic, not conversation
    history = [to_langchain(m) for m in without_grading_messages(state["messages"])]

    agent_model = services.chat_model.bind_tools(services.tools)
    try:
        response = await agent_model.ainvoke([SystemMessage(content=AGENT_SYSTEM_PROMPT)] + history)
    except Exception as e:
        telemetry.log_error("Error invoking the agent", error=e)
        raise NodeInvocationError(AGENT, e) from e

    message = from_langchain(response, AGENT)
    telemetry.log_info("---AGENT RESPONSE GENERATED---", requested_tools=isinstance(message, ToolRequestMessage))
    return {"messages": [message]}


# ── 2. Relevance Grader ────────────────────────────────────────────────
class RelevanceGrade(BaseModel):
    """Evaluate how well the retrieved documents support the user's recommendation request."""
    score: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description=(
            "Relevance score between 0 and 1. "
            "0.9-1.0 = perfect match, directly answers the request; "
            "0.7-0.89 = strong match, covers most aspects; "
            "0.5-0.69 = partial match, some relevant information; "
            "0.3-0.49 = weak match, limited relevance; "
            "0-0.29 = no meaningful connection"
        ),
    )
    explanation: str = Field(
        default="",
        description="A single sentence justification for the relevance score",
    )


GRADE_TOOL = {
    "type": "function",
    "function": {
        "name": GRADE_TOOL_NAME,
        "description": RelevanceGrade.__doc__,
        "parameters": RelevanceGrade.model_json_schema(),
    },
}

GRADE_PROMPT = ChatPromptTemplate.from_template(
    """You are an expert TV show recommendation assistant. Your task is to evaluate how relevant the retrieved documents are to the user's request.

Here's the user's request:
{question}

Here are the retrieved documents:
{context}

Give a relevance score between 0 and 1 using these guidelines:
- 0.9-1.0: Perfect match, directly answers the request
- 0.7-0.89: Strong match, covers most aspects
- 0.5-0.69: Partial match, some relevant information
- 0.3-0.49: Weak match, limited relevance
- 0-0.29: No meaningful connection (including errors or empty results)

Consider whether the documents name specific shows, whether they match the requested genres, themes and tone,
and whether they give enough detail to recommend with confidence.
Call {tool_name} with the score and a one sentence explanation."""
)


def _joined_context(state: WorkflowState) -> str:
    results = latest_tool_results(state["messages"])
    if not results:
        raise MissingToolResultError()
    return "\n\n".join(r.content for r in results)


@traceable(run_type="chain", name="Relevance_Grader")
@telemetry.time_operation("grade")
async def grade_node(state: WorkflowState, services: WorkflowServices) -> dict:
    telemetry.log_info("---GET RELEVANCE---")
    messages = state["messages"]
    question = original_request(messages).content
    context = _joined_context(state)

    # forced tool choice: the routing step needs a parseable numeric field
    grader = services.chat_model.bind_tools([GRADE_TOOL], tool_choice=GRADE_TOOL_NAME)
    chain = GRADE_PROMPT | grader
    try:
        response = await chain.ainvoke({"question": question, "context": context, "tool_name": GRADE_TOOL_NAME})
    except Exception as e:
        telemetry.log_error("Error grading retrieved context", error=e)
        raise NodeInvocationError(GRADER, e) from e

    message = from_langchain(response, GRADER)
    if isinstance(message, ToolRequestMessage):
        telemetry.log_info("Grade received", judgment=message.tool_calls[0].arguments)
    return {"messages": [message]}


# ── 3. Query Refiner ───────────────────────────────────────────────────
REWRITE_PROMPT = ChatPromptTemplate.from_template(
    """You are a highly experienced TV show recommendation assistant.
The user has asked:
"{question}"

Please analyze if the user is asking for:
1. A specific show recommendation
2. Recommendations based on content match (title, description, cast), genre alignment, release period, popularity and ratings, or cultural significance
3. Help understanding which shows might suit their preferences

Based on the analysis, refine the query to be more precise and actionable for fetching relevant, well rated TV show recommendations.
Consider including specific details such as desired genre, mood, style, or any other factors that might improve the search accuracy.
Preserve the user's intent. If the query is already clear and specific, return it as is.
Return only the improved query as plain text."""
)


@traceable(run_type="chain", name="Query_Refiner")
@telemetry.time_operation("rewrite")
async def rewrite_node(state: WorkflowState, services: WorkflowServices) -> dict:
    telemetry.log_info("---REWRITE: Refining the recommendation query---")
    # only the original request; tool and grading noise stays out
    question = original_request(state["messages"]).content

    chain = REWRITE_PROMPT | services.chat_model
    try:
        response = await chain.ainvoke({"question": question})
    except Exception as e:
        telemetry.log_error("Error in rewrite", error=e)
        raise NodeInvocationError(REFINER, e) from e

    refined = from_langchain(response, REFINER).content.strip() or question
    telemetry.log_info("---REWRITE: Query refined successfully---", refined=refined[:200])

    if services.refine_route == "search":
        message = ToolRequestMessage(
            tool_calls=(ToolCall(name=WEB_SEARCH_TOOL_NAME, arguments={"query": refined}),),
            content=refined,
            name=REFINER,
        )
    else:
        message = AssistantMessage(content=refined, name=REFINER)
    return {"messages": [message]}


# ── 4. Answer Generator ────────────────────────────────────────────────
GENERATE_PROMPT = ChatPromptTemplate.from_template(
    """You are an expert TV show recommendation assistant. Your task is to generate personalized recommendations based on the user's preferences and the searched context.

User's question: {question}

Context: {context}

Instructions:
1. Analyze the user's preferences carefully
2. Consider the context from the search results
3. Generate 3-5 specific TV show recommendations in the best possible order of watch, one per line
4. Each line is exactly: <title> on <streaming platform> (e.g. Netflix, Hulu, Amazon Prime Video)
5. Do not add extra explanation, just the list
6. If no good matches are found, suggest the closest alternatives in the same format

Answer:"""
)


@traceable(run_type="chain", name="Answer_Generator")
@telemetry.time_operation("generate")
async def generate_node(state: WorkflowState, services: WorkflowServices) -> dict:
    telemetry.log_info("---GENERATE: Generating final recommendation---")
    messages = state["messages"]
    question = original_request(messages).content
    context = _joined_context(state)

    chain = GENERATE_PROMPT | services.chat_model
    try:
        response = await chain.ainvoke({"question": question, "context": context})
    except Exception as e:
        telemetry.log_error("Error generating recommendations", error=e)
        raise NodeInvocationError(GENERATOR, e) from e

    answer = from_langchain(response, GENERATOR).content.strip()
    telemetry.log_info("---GENERATE: Recommendation generated successfully---", lines=len(answer.splitlines()))
    return {"messages": [AssistantMessage(content=answer, name=GENERATOR)]}


# ── 5. Answer parsing ──────────────────────────────────────────────────
@dataclass(frozen=True)
class Recommendation:
    title: str
    platform: Optional[str] = None


_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_ON_SPLIT = re.compile(r"\s+on\s+", re.IGNORECASE)


def parse_recommendations(answer: str) -> List[Recommendation]:
    """Splits "Title on Platform" lines; markdown list markers and bold are ignored."""
    items = []
    for raw in answer.splitlines():
        line = _LIST_MARKER.sub("", raw).replace("**", "").strip()
        if not line:
            continue
        parts = _ON_SPLIT.split(line)
        if len(parts) == 1:
            items.append(Recommendation(title=line))
            continue
        # titles may contain " on " themselves; the platform is the last part
        title = " on ".join(parts[:-1]).strip()
        platform = parts[-1].strip().rstrip(".")
        items.append(Recommendation(title=title, platform=platform or None))
    return items

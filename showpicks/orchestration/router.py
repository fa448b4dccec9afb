"""
Routing functions for the conditional edges.

Both are pure functions of state (plus their bound policy constants): the
same last-message shape always yields the same branch.
"""
import math
from numbers import Real

from langgraph.graph import END

from showpicks.core.errors import InvalidScoreError, MissingJudgmentError
from showpicks.core.telemetry import get_telemetry
from showpicks.orchestration.state import (
    AssistantMessage,
    ToolRequestMessage,
    ToolResultMessage,
    UserMessage,
    WorkflowState,
    count_refinements,
    last_message,
)
from showpicks.retrieval.search import RETRIEVER_TOOL_NAME

telemetry = get_telemetry('orchestration.router')

SEARCH = "search"
RETRIEVE = "retrieve"
RELEVANT = "yes"
NOT_RELEVANT = "no"
EXHAUSTED = "exhausted"

# lower edge of the "partial match" band, only used for logging
PARTIAL_MATCH_FLOOR = 0.5


def should_retrieve(state: WorkflowState) -> str:
    """agent -> search | retrieve | END"""
    telemetry.log_info("---DECIDE TO SEARCH---")
    message = last_message(state["messages"])

    if isinstance(message, ToolRequestMessage):
        if not message.tool_calls:
            return END
        if message.tool_calls[0].name == RETRIEVER_TOOL_NAME:
            telemetry.log_info("---DECISION: RETRIEVE---")
            return RETRIEVE
        telemetry.log_info("---DECISION: SEARCH---")
        return SEARCH
    if isinstance(message, (AssistantMessage, UserMessage, ToolResultMessage)):
        telemetry.log_info("---DECISION: FINISH---")
        return END
    raise TypeError(f"not a conversation message: {type(message).__name__}")


def extract_score(message) -> float:
    """Pulls the numeric score out of a grading payload, or fails the run."""
    if not isinstance(message, ToolRequestMessage) or not message.tool_calls:
        raise MissingJudgmentError()

    score = message.tool_calls[0].arguments.get("score")
    # bool is an int subclass but never a score
    if isinstance(score, bool) or not isinstance(score, Real):
        raise InvalidScoreError(score)
    score = float(score)
    if math.isnan(score) or not 0.0 <= score <= 1.0:
        raise InvalidScoreError(score)
    return score


def check_relevance(state: WorkflowState, threshold: float = 0.7, max_refinements: int = 3) -> str:
    """grade -> yes | no | exhausted"""
    telemetry.log_info("---CHECK RELEVANCE---")
    messages = state["messages"]
    score = extract_score(last_message(messages))
    telemetry.log_info(f"Relevance Score: {score}")

    if score >= threshold:
        telemetry.log_info("---DECISION: DOCS RELEVANT (Strong/Perfect Match)---")
        return RELEVANT
    if score >= PARTIAL_MATCH_FLOOR:
        telemetry.log_info("---DECISION: DOCS PARTIALLY RELEVANT (Partial Match)---")
    else:
        telemetry.log_info("---DECISION: DOCS NOT RELEVANT (Weak/No Match)---")

    refinements = count_refinements(messages)
    if refinements >= max_refinements:
        telemetry.log_warning("Maximum refinement loops reached", refinements=refinements)
        return EXHAUSTED
    return NOT_RELEVANT

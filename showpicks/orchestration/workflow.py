"""
Recommendation Workflow Engine
Builds the LangGraph state machine and drives runs from a single user
message to the generator's answer (or a fatal error).

    START -> agent -> (search | retrieve | END)
    search/retrieve -> grade -> (generate | rewrite | exhausted)
    rewrite -> agent            (REFINE_ROUTE=agent)
    rewrite -> search           (REFINE_ROUTE=search)
    generate -> END
"""
import asyncio
import time
from functools import partial
from typing import AsyncIterator, List, Optional, Tuple

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from showpicks.core.errors import NoRecommendationError, RefinementLimitError
from showpicks.core.telemetry import get_telemetry
from showpicks.orchestration.nodes import agent_node, generate_node, grade_node, rewrite_node
from showpicks.orchestration.router import (
    EXHAUSTED,
    NOT_RELEVANT,
    RELEVANT,
    RETRIEVE,
    SEARCH,
    check_relevance,
    should_retrieve,
)
from showpicks.orchestration.services import WorkflowServices, build_services
from showpicks.orchestration.state import (
    GENERATOR,
    AssistantMessage,
    Message,
    ToolRequestMessage,
    WorkflowState,
    append_messages,
    count_refinements,
    initial_state,
    last_message,
    latest_query,
    serialize_state,
)
from showpicks.tools.invoker import ToolInvoker

telemetry = get_telemetry('orchestration.workflow')

# node names
AGENT_NODE = "agent"
SEARCH_NODE = SEARCH
RETRIEVE_NODE = RETRIEVE
GRADE_NODE = "grade"
REWRITE_NODE = "rewrite"
GENERATE_NODE = "generate"
GIVE_UP_NODE = "give_up"

# agent, tool, grade, rewrite
STEPS_PER_CYCLE = 4


async def give_up_node(state: WorkflowState) -> dict:
    raise RefinementLimitError(count_refinements(state["messages"]))


def build_graph(services: WorkflowServices):
    """
    Constructs the state machine graph from explicitly injected services.
    """
    workflow = StateGraph(WorkflowState)

    # 1. nodes
    invoker = ToolInvoker(services.tools)
    workflow.add_node(AGENT_NODE, partial(agent_node, services=services))
    workflow.add_node(SEARCH_NODE, invoker)
    workflow.add_node(RETRIEVE_NODE, invoker)
    workflow.add_node(GRADE_NODE, partial(grade_node, services=services))
    workflow.add_node(REWRITE_NODE, partial(rewrite_node, services=services))
    workflow.add_node(GENERATE_NODE, partial(generate_node, services=services))

    # 2. edges
    workflow.add_edge(START, AGENT_NODE)
    workflow.add_conditional_edges(
        AGENT_NODE,
        should_retrieve,
        {SEARCH: SEARCH_NODE, RETRIEVE: RETRIEVE_NODE, END: END},
    )
    workflow.add_edge(SEARCH_NODE, GRADE_NODE)
    workflow.add_edge(RETRIEVE_NODE, GRADE_NODE)

    if services.refinement_fallback == "fail":
        workflow.add_node(GIVE_UP_NODE, give_up_node)
        exhausted_target = GIVE_UP_NODE
    else:
        exhausted_target = GENERATE_NODE

    workflow.add_conditional_edges(
        GRADE_NODE,
        partial(
            check_relevance,
            threshold=services.relevance_threshold,
            max_refinements=services.max_refinements,
        ),
        {RELEVANT: GENERATE_NODE, NOT_RELEVANT: REWRITE_NODE, EXHAUSTED: exhausted_target},
    )

    if services.refine_route == "search":
        workflow.add_edge(REWRITE_NODE, SEARCH_NODE)
    else:
        workflow.add_edge(REWRITE_NODE, AGENT_NODE)
    workflow.add_edge(GENERATE_NODE, END)

    return workflow.compile()


def recursion_limit(services: WorkflowServices) -> int:
    # every allowed refinement cycle plus the final pass, with headroom
    return STEPS_PER_CYCLE * (services.max_refinements + 2) + 2


def _run_config(services: WorkflowServices, thread_id: Optional[str]) -> RunnableConfig:
    return RunnableConfig(
        tags=["showpicks", "recommendation"],
        run_name="ShowPicks_Recommendation",
        recursion_limit=recursion_limit(services),
        metadata={"thread_id": thread_id} if thread_id else {},
    )


def _describe(message: Message) -> dict:
    summary = {"type": message.role, "content": message.content[:200]}
    if isinstance(message, ToolRequestMessage):
        summary["tool_calls"] = [{"name": c.name, "args": c.arguments} for c in message.tool_calls]
    return summary


async def astream_run(
    user_input: str,
    services: WorkflowServices,
    thread_id: Optional[str] = None,
) -> AsyncIterator[Tuple[str, List[Message]]]:
    """Runs the workflow, yielding (node name, appended messages) per step."""
    app = build_graph(services)
    inputs = initial_state(user_input)
    async for update in app.astream(inputs, config=_run_config(services, thread_id), stream_mode="updates"):
        for node_name, output in update.items():
            new_messages = list((output or {}).get("messages", []))
            if new_messages:
                telemetry.log_info(f"Output from node: '{node_name}'", **_describe(new_messages[-1]))
            else:
                telemetry.log_warning(f"No messages found in output from node: '{node_name}'")
            yield node_name, new_messages


async def arun_state(
    user_input: str,
    services: WorkflowServices,
    thread_id: Optional[str] = None,
) -> WorkflowState:
    """
    Executes one run and returns the final conversation state.
    Raises NoRecommendationError if the run ended without a generated answer.
    """
    start_time = time.time()
    telemetry.log_info("Starting recommendation run", input=user_input[:100], thread_id=thread_id)

    state = initial_state(user_input)
    async for _node, new_messages in astream_run(user_input, services, thread_id):
        state = {"messages": append_messages(state["messages"], new_messages)}

    final = last_message(state["messages"])
    if not (isinstance(final, AssistantMessage) and final.name == GENERATOR):
        raise NoRecommendationError("agent finished without retrieving context for a recommendation")

    duration = time.time() - start_time
    telemetry.log_info("Recommendation run completed", duration_ms=round(duration * 1000, 2),
                       steps=len(state["messages"]), refinements=count_refinements(state["messages"]),
                       final_query=latest_query(state["messages"])[:200])
    telemetry.track_metric("run_duration", duration)
    return state


async def arun(
    user_input: str,
    services: WorkflowServices,
    thread_id: Optional[str] = None,
    as_json: bool = False,
) -> str:
    state = await arun_state(user_input, services, thread_id)
    if as_json:
        return serialize_state(state)
    return last_message(state["messages"]).content


def run(
    user_input: str,
    services: Optional[WorkflowServices] = None,
    *,
    thread_id: Optional[str] = None,
    as_json: bool = False,
) -> str:
    """
    Synchronous entry point: free-text preferences in, recommendation text
    (or the JSON-serialized final state) out. Builds real services from
    settings when none are given.
    """
    if services is None:
        services = build_services()
    return asyncio.run(arun(user_input, services, thread_id=thread_id, as_json=as_json))

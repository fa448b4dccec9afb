from dataclasses import dataclass, field
from typing import List

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.tools import BaseTool

from showpicks.core.config import Settings, settings as default_settings
from showpicks.core.models import build_chat_model
from showpicks.core.telemetry import get_telemetry

telemetry = get_telemetry('orchestration.services')


@dataclass
class WorkflowServices:
    """
    Everything a run talks to, constructed once and passed into the engine.

    Attributes:
        chat_model: tool-calling chat model shared by agent, grader, refiner
            and generator.
        tools: retrieval/search capabilities the agent may request.
        relevance_threshold: minimum score (0-1) for retrieved context to be
            accepted.
        max_refinements: refinement cycles allowed before the loop gives up.
        refinement_fallback: "answer" to answer from the latest context once
            the cap is hit, "fail" to abort the run.
        refine_route: "agent" sends a refined query back to the agent,
            "search" sends it straight to the tool invoker.
    """
    chat_model: BaseChatModel
    tools: List[BaseTool] = field(default_factory=list)
    relevance_threshold: float = 0.7
    max_refinements: int = 3
    refinement_fallback: str = "answer"
    refine_route: str = "agent"

    @property
    def tool_names(self) -> List[str]:
        return [t.name for t in self.tools]


def build_services(settings: Settings = default_settings) -> WorkflowServices:
    """Constructs the real model and capability clients from settings."""
    from showpicks.retrieval.search import make_retriever_tool
    from showpicks.tools.search import make_web_search_tool

    settings.validate()
    tools: List[BaseTool] = [make_web_search_tool(settings)]
    if settings.RETRIEVER_ENABLED:
        tools.append(make_retriever_tool(settings))

    services = WorkflowServices(
        chat_model=build_chat_model(settings),
        tools=tools,
        relevance_threshold=settings.RELEVANCE_THRESHOLD,
        max_refinements=settings.MAX_REFINEMENTS,
        refinement_fallback=settings.REFINEMENT_FALLBACK,
        refine_route=settings.REFINE_ROUTE,
    )
    telemetry.log_info("Workflow services built", tools=services.tool_names,
                       threshold=services.relevance_threshold, max_refinements=services.max_refinements)
    return services

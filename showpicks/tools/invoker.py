import json
from typing import Any, Dict, List, Sequence

from langchain_core.tools import BaseTool
from langsmith import traceable

from showpicks.core.errors import MissingToolRequestError
from showpicks.core.telemetry import get_telemetry
from showpicks.orchestration.state import (
    ToolRequestMessage,
    ToolResultMessage,
    WorkflowState,
    last_message,
)

telemetry = get_telemetry('tools.invoker')


def _as_text(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, default=str)


class ToolInvoker:
    """
    Workflow step that executes the pending tool calls of the last message.

    One result per call, in call order. A failing or unknown capability
    yields an error-bearing result instead of aborting the run, so grading
    sees it as a low-relevance signal.
    """

    def __init__(self, tools: Sequence[BaseTool]):
        self.tools: Dict[str, BaseTool] = {t.name: t for t in tools}

    async def _invoke(self, call) -> ToolResultMessage:
        capability = self.tools.get(call.name)
        if capability is None:
            telemetry.log_warning("Unknown tool requested", tool=call.name)
            return ToolResultMessage(
                content=f"Error: tool '{call.name}' is not available",
                tool_call_id=call.id,
                name=call.name,
                is_error=True,
            )
        try:
            output = await capability.ainvoke(dict(call.arguments))
        except Exception as e:
            telemetry.log_warning("Tool call failed", tool=call.name, error=str(e))
            telemetry.track_metric("tool_errors", 1)
            return ToolResultMessage(
                content=f"Error: {call.name} failed: {e}",
                tool_call_id=call.id,
                name=call.name,
                is_error=True,
            )
        return ToolResultMessage(content=_as_text(output), tool_call_id=call.id, name=call.name)

    @traceable(run_type="tool", name="Tool_Invoker")
    async def __call__(self, state: WorkflowState) -> dict:
        message = last_message(state["messages"])
        if not isinstance(message, ToolRequestMessage) or not message.tool_calls:
            raise MissingToolRequestError()

        telemetry.log_info("---INVOKING TOOLS---", calls=[c.name for c in message.tool_calls])
        results: List[ToolResultMessage] = []
        # result order must match call order
        for call in message.tool_calls:
            results.append(await self._invoke(call))
        return {"messages": results}

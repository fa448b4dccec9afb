import json
import unittest

from fakes import SNIPPETS, make_search_tool
from showpicks.core.errors import MissingToolRequestError
from showpicks.orchestration.state import (
    AssistantMessage,
    ToolCall,
    ToolRequestMessage,
    ToolResultMessage,
    UserMessage,
)
from showpicks.tools.invoker import ToolInvoker


def _state(*calls):
    return {"messages": [
        UserMessage(content="I like sci-fi with complex plots"),
        ToolRequestMessage(tool_calls=tuple(calls), name="agent"),
    ]}


class TestToolInvoker(unittest.IsolatedAsyncioTestCase):

    async def test_one_result_per_call_in_order(self):
        calls = []
        invoker = ToolInvoker([
            make_search_tool(calls=calls),
            make_search_tool(results=[{"title": "Devs"}], name="content_retriever"),
        ])

        update = await invoker(_state(
            ToolCall(name="content_retriever", arguments={"query": "quantum"}, id="a"),
            ToolCall(name="web_search", arguments={"query": "time travel"}, id="b"),
        ))

        results = update["messages"]
        self.assertEqual([r.tool_call_id for r in results], ["a", "b"])
        self.assertEqual([r.name for r in results], ["content_retriever", "web_search"])
        self.assertEqual(json.loads(results[0].content), [{"title": "Devs"}])
        self.assertEqual(json.loads(results[1].content), SNIPPETS)
        self.assertEqual(calls, ["time travel"])
        self.assertFalse(any(r.is_error for r in results))

    async def test_failing_capability_yields_error_result(self):
        invoker = ToolInvoker([make_search_tool(error=ConnectionError("search provider unreachable"))])

        update = await invoker(_state(ToolCall(name="web_search", arguments={"query": "sci-fi"}, id="call_1")))

        self.assertEqual(update["messages"], [ToolResultMessage(
            content="Error: web_search failed: search provider unreachable",
            tool_call_id="call_1",
            name="web_search",
            is_error=True,
        )])

    async def test_unknown_capability_yields_error_result(self):
        invoker = ToolInvoker([make_search_tool()])

        update = await invoker(_state(ToolCall(name="imdb_lookup", arguments={}, id="x")))

        result = update["messages"][0]
        self.assertTrue(result.is_error)
        self.assertEqual(result.tool_call_id, "x")
        self.assertIn("imdb_lookup", result.content)

    async def test_requires_pending_tool_calls(self):
        invoker = ToolInvoker([make_search_tool()])
        with self.assertRaises(MissingToolRequestError):
            await invoker({"messages": [UserMessage(content="hi"), AssistantMessage(content="no tools")]})
        with self.assertRaises(MissingToolRequestError):
            await invoker(_state())


if __name__ == "__main__":
    unittest.main()

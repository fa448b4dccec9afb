import asyncio
import json
import time
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from showpicks.retrieval.search import RETRIEVER_TOOL_NAME, _parse_results, make_retriever_tool, query_catalog
from showpicks.tools.search import WEB_SEARCH_TOOL_NAME, _tavily_search, make_web_search_tool, search_web


def _settings(**overrides):
    values = dict(
        SEARCH_PROVIDER="duckduckgo",
        SEARCH_MAX_RESULTS=3,
        SEARCH_TIMEOUT_S=5,
        TAVILY_API_KEY=None,
        RETRIEVER_TOP_K=2,
        CHROMA_DB_PATH="/tmp/showpicks-test-chroma",
        CHROMA_COLLECTION_NAME="showpicks-test",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestWebSearch(unittest.TestCase):

    @patch("showpicks.tools.search.DDGS")
    def test_duckduckgo_results_are_normalized(self, mock_ddgs):
        mock_ddgs.return_value.text.return_value = [
            {"title": "Dark", "href": "https://example.com/dark", "body": "Time-travel mystery"},
        ]

        results = search_web("complex sci-fi", _settings())

        mock_ddgs.return_value.text.assert_called_once_with("complex sci-fi", max_results=3)
        self.assertEqual(results, [
            {"title": "Dark", "url": "https://example.com/dark", "content": "Time-travel mystery"},
        ])

    @patch("showpicks.tools.search._session")
    def test_tavily_posts_query(self, mock_session):
        mock_session.post.return_value.json.return_value = {
            "results": [{"title": "Severance", "url": "https://example.com/s", "content": "Workplace thriller"}],
        }

        results = search_web("office thrillers", _settings(SEARCH_PROVIDER="tavily", TAVILY_API_KEY="tvly-key"))

        _, kwargs = mock_session.post.call_args
        self.assertEqual(kwargs["json"]["query"], "office thrillers")
        self.assertEqual(kwargs["json"]["max_results"], 3)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tvly-key")
        self.assertEqual(results[0]["title"], "Severance")

    def test_tavily_requires_key(self):
        with self.assertRaises(RuntimeError):
            _tavily_search("anything", 3, None, 5)

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            search_web("anything", _settings(SEARCH_PROVIDER="bing"))


class TestWebSearchTool(unittest.IsolatedAsyncioTestCase):

    @patch("showpicks.tools.search.DDGS")
    async def test_tool_returns_json_text(self, mock_ddgs):
        mock_ddgs.return_value.text.return_value = [{"title": "Devs", "href": "u", "body": "b"}]
        search_tool = make_web_search_tool(_settings())

        self.assertEqual(search_tool.name, WEB_SEARCH_TOOL_NAME)
        output = await search_tool.ainvoke({"query": "quantum thrillers"})

        self.assertEqual(json.loads(output), [{"title": "Devs", "url": "u", "content": "b"}])

    @patch("showpicks.tools.search.DDGS")
    async def test_provider_errors_propagate(self, mock_ddgs):
        mock_ddgs.return_value.text.side_effect = RuntimeError("ratelimit")
        search_tool = make_web_search_tool(_settings())
        with self.assertRaises(RuntimeError):
            await search_tool.ainvoke({"query": "anything"})


CHROMA_RESPONSE = {
    "ids": [["dark", "devs"]],
    "documents": [["German time-travel mystery", "Quantum computing thriller"]],
    "metadatas": [[{"title": "Dark"}, None]],
    "distances": [[0.12, 0.34]],
}


class TestCatalogRetriever(unittest.IsolatedAsyncioTestCase):

    def test_parse_results(self):
        self.assertEqual(_parse_results(CHROMA_RESPONSE), [
            {"title": "Dark", "content": "German time-travel mystery", "distance": 0.12},
            {"title": "", "content": "Quantum computing thriller", "distance": 0.34},
        ])
        self.assertEqual(_parse_results({"ids": [[]]}), [])
        self.assertEqual(_parse_results({}), [])

    def test_query_catalog_uses_top_k(self):
        collection = MagicMock()
        collection.query.return_value = CHROMA_RESPONSE

        snippets = query_catalog("time travel", collection, 2)

        self.assertEqual(collection.query.call_args.kwargs["n_results"], 2)
        self.assertEqual(collection.query.call_args.kwargs["query_texts"], ["time travel"])
        self.assertEqual(len(snippets), 2)

    async def test_retriever_tool(self):
        collection = MagicMock()
        collection.query.return_value = CHROMA_RESPONSE
        retriever = make_retriever_tool(_settings(), collection=collection)

        self.assertEqual(retriever.name, RETRIEVER_TOOL_NAME)
        output = await retriever.ainvoke({"query": "time travel"})

        self.assertEqual(json.loads(output)[0]["title"], "Dark")

    @patch.dict("showpicks.retrieval.search._chroma_clients", clear=True)
    @patch("chromadb.PersistentClient")
    async def test_opening_the_catalog_does_not_block_the_event_loop(self, mock_client):
        def _slow_client(path):
            time.sleep(0.4)
            client = MagicMock()
            client.get_or_create_collection.return_value.query.return_value = CHROMA_RESPONSE
            return client

        mock_client.side_effect = _slow_client
        retriever = make_retriever_tool(_settings())
        loop = asyncio.get_running_loop()
        gaps = []

        async def tick():
            last = loop.time()
            while True:
                await asyncio.sleep(0.01)
                now = loop.time()
                gaps.append(now - last)
                last = now

        ticker = asyncio.create_task(tick())
        try:
            output = await retriever.ainvoke({"query": "time travel"})
        finally:
            ticker.cancel()

        self.assertEqual(json.loads(output)[0]["title"], "Dark")
        mock_client.assert_called_once_with(path="/tmp/showpicks-test-chroma")
        self.assertLess(max(gaps), 0.3)


if __name__ == "__main__":
    unittest.main()

import unittest

from showpicks.core.telemetry import Telemetry, get_telemetry


class TestTelemetry(unittest.TestCase):

    def test_instances_are_shared_per_component(self):
        self.assertIs(get_telemetry("tests.telemetry"), get_telemetry("tests.telemetry"))

    def test_structured_fields_are_appended(self):
        telemetry = Telemetry("tests.telemetry.fields")
        with self.assertLogs("tests.telemetry.fields", level="INFO") as logs:
            telemetry.log_info("Search done", results=3)
        self.assertIn('Search done {"results": 3}', logs.output[0])

    def test_time_operation_records_duration(self):
        telemetry = Telemetry("tests.telemetry.sync")

        @telemetry.time_operation("parse")
        def parse():
            return "ok"

        self.assertEqual(parse(), "ok")
        self.assertEqual(len(telemetry.metrics["parse_duration"]), 1)

    def test_metric_series_keep_a_bounded_window(self):
        telemetry = Telemetry("tests.telemetry.window", max_samples=3)
        for value in range(10):
            telemetry.track_metric("tool_errors", value)
        self.assertEqual([s["value"] for s in telemetry.metrics["tool_errors"]], [7, 8, 9])

    def test_time_operation_reraises(self):
        telemetry = Telemetry("tests.telemetry.error")

        @telemetry.time_operation("parse")
        def parse():
            raise ValueError("bad")

        with self.assertLogs("tests.telemetry.error", level="ERROR"):
            with self.assertRaises(ValueError):
                parse()
        self.assertNotIn("parse_duration", telemetry.metrics)


class TestAsyncTiming(unittest.IsolatedAsyncioTestCase):

    async def test_async_operation(self):
        telemetry = Telemetry("tests.telemetry.async")

        @telemetry.time_operation("fetch")
        async def fetch():
            return 42

        self.assertEqual(await fetch(), 42)
        self.assertIn("fetch_duration", telemetry.metrics)


if __name__ == "__main__":
    unittest.main()

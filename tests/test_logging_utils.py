from __future__ import annotations

import json
import logging
import unittest

from fichaje.logging_utils import JsonFormatter, RequestIdFilter, request_id_var


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "fichaje.time_tracking", "levelname": "INFO", "msg": message})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class JsonLoggingTests(unittest.TestCase):
    def test_formatter_emits_event_and_extra_fields(self) -> None:
        record = _record("clock_in_recorded", employee_id=7, entry_id=None)
        payload = json.loads(JsonFormatter("fichaje").format(record))

        self.assertEqual(payload["event"], "clock_in_recorded")
        self.assertEqual(payload["service"], "fichaje")
        self.assertEqual(payload["logger"], "fichaje.time_tracking")
        self.assertEqual(payload["employee_id"], 7)
        self.assertNotIn("entry_id", payload)
        self.assertNotIn("msg", payload)

    def test_filter_uses_context_request_id(self) -> None:
        token = request_id_var.set("req-42")
        try:
            record = _record("break_started")
            self.assertTrue(RequestIdFilter().filter(record))
            self.assertEqual(record.request_id, "req-42")

            explicit = _record("break_ended", request_id="req-1")
            RequestIdFilter().filter(explicit)
            self.assertEqual(explicit.request_id, "req-1")
        finally:
            request_id_var.reset(token)


if __name__ == "__main__":
    unittest.main()

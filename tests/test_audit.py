"""
Agent Core — FSM Transition Log and Telemetry Tests
"""

import logging
import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from agentcore.audit import TransitionLog
from agentcore.db import SQLiteBackend
from agentcore.fsm import AgentState, create_log_entry
from agentcore.telemetry import CallbackSink, InMemorySink, LoggingSink, NullSink, transition_event


class TestTransitionLog(unittest.TestCase):

    def setUp(self):
        self.db = SQLiteBackend(":memory:")
        self.log = TransitionLog(self.db)

    def tearDown(self):
        self.db.close()

    def test_log_entry_gets_id(self):
        entry = create_log_entry(AgentState.OBSERVE, AgentState.THINK, "devon", "6-1")
        stored = self.log.log_transition(entry)
        self.assertIsNotNone(stored.id)
        self.assertEqual(stored.timestamp, entry.timestamp)

    def test_log_from_fields(self):
        stored = self.log.log_transition("6-1", "devon", AgentState.THINK, "ACT")
        self.assertEqual((stored.from_state, stored.to_state), ("THINK", "ACT"))

    def test_ordering(self):
        self.log.log_transition("6-1", "devon", "OBSERVE", "THINK")
        self.log.log_transition("6-2", "tara", "OBSERVE", "THINK")
        self.log.log_transition("6-1", "devon", "THINK", "ACT")
        self.assertEqual([e.to_state for e in self.log.get_transitions("6-1")], ["THINK", "ACT"])
        self.assertEqual([e.to_state for e in self.log.get_transitions("6-1", descending=True)],
                         ["ACT", "THINK"])
        self.assertEqual(self.log.get_latest("6-1").to_state, "ACT")
        self.assertIsNone(self.log.get_latest("9-9"))
        self.assertEqual(self.log.count(), 3)

    def test_store_failure_is_swallowed(self):
        self.db.close()
        with self.assertLogs("agentcore.audit", level="WARNING"):
            entry = self.log.log_transition("6-1", "devon", "OBSERVE", "THINK")
        self.assertIsNone(entry.id)
        with self.assertLogs("agentcore.audit", level="WARNING"):
            self.assertEqual(self.log.get_transitions("6-1"), [])


class TestTelemetry(unittest.TestCase):

    def setUp(self):
        self.entry = create_log_entry("ACT", "WAIT", "devon", "6-1")

    def test_event_shape(self):
        event = transition_event(self.entry)
        self.assertEqual(event, {
            "subtaskId": "6-1", "agent": "devon", "from": "ACT", "to": "WAIT",
            "timestamp": self.entry.timestamp,
        })

    def test_in_memory_sink(self):
        sink = InMemorySink()
        sink.publish(transition_event(self.entry))
        sink.publish({"subtaskId": "other"})
        self.assertEqual(len(sink.events), 2)
        self.assertEqual(len(sink.for_subtask("6-1")), 1)
        sink.clear()
        self.assertEqual(sink.events, [])

    def test_callback_and_null_sinks(self):
        received = []
        CallbackSink(received.append).publish({"a": 1})
        NullSink().publish({"a": 2})
        self.assertEqual(received, [{"a": 1}])

    def test_logging_sink(self):
        with self.assertLogs("agentcore.telemetry", level="INFO") as logs:
            LoggingSink().publish(transition_event(self.entry))
        record = logs.records[0]
        self.assertEqual(record.getMessage(), "state_change")
        self.assertEqual(record.structured["to"], "WAIT")
        self.assertEqual(record.levelno, logging.INFO)


if __name__ == "__main__":
    unittest.main()

import unittest
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from voxride.gate import (
    ConfidenceGate,
    GateOutcome,
    REASON_UNINTELLIGIBLE,
    REASON_NO_MATCH,
    REASON_LOW_CONFIDENCE,
)
from voxride.matcher import Matcher
from voxride.registry import default_registry
from voxride.settings import SessionSettings


class TestConfidenceGate(unittest.TestCase):
    def setUp(self):
        self.settings = SessionSettings()
        self.gate = ConfidenceGate(self.settings)
        self.candidate = Matcher(default_registry()).match("turn left")

    def test_unintelligible(self):
        d = self.gate.decide(self.candidate, 0.60)
        self.assertEqual(d.outcome, GateOutcome.REJECT)
        self.assertEqual(d.reason, REASON_UNINTELLIGIBLE)
        self.assertIsNone(d.candidate)

    def test_no_match(self):
        d = self.gate.decide(None, 0.95)
        self.assertEqual(d.outcome, GateOutcome.REJECT)
        self.assertEqual(d.reason, REASON_NO_MATCH)

    def test_suggest(self):
        d = self.gate.decide(self.candidate, 0.70)
        self.assertEqual(d.outcome, GateOutcome.SUGGEST)
        self.assertEqual(d.reason, REASON_LOW_CONFIDENCE)
        self.assertIs(d.candidate, self.candidate)

    def test_execute_at_threshold(self):
        d = self.gate.decide(self.candidate, 0.75)
        self.assertEqual(d.outcome, GateOutcome.EXECUTE)

    def test_trainer_mode(self):
        self.settings.set_threshold(0.90)
        self.settings.set_trainer_mode(True)
        self.assertEqual(self.gate.decide(self.candidate, 0.82).outcome, GateOutcome.EXECUTE)
        self.assertEqual(self.gate.decide(self.candidate, 0.78).outcome, GateOutcome.SUGGEST)

    def test_reads_settings_live(self):
        self.assertEqual(self.gate.decide(self.candidate, 0.80).outcome, GateOutcome.EXECUTE)
        self.settings.set_threshold(0.85)
        self.assertEqual(self.gate.decide(self.candidate, 0.80).outcome, GateOutcome.SUGGEST)


class TestSettings(unittest.TestCase):
    def test_clamping(self):
        s = SessionSettings()
        self.assertEqual(s.set_threshold(0.2), 0.5)
        self.assertEqual(s.set_threshold(0.99), 0.95)
        self.assertEqual(s.set_rate_limit(50), 100)
        self.assertEqual(s.set_rate_limit(5000), 2000)
        self.assertEqual(s.set_max_queue_size(0), 1)
        self.assertEqual(s.set_max_queue_size(50), 20)
        self.assertEqual(s.set_key_press_delay(1), 10)

    def test_constructor_clamps(self):
        s = SessionSettings(confidence_threshold=2.0, rate_limit_ms=10)
        self.assertEqual(s.confidence_threshold, 0.95)
        self.assertEqual(s.rate_limit_ms, 100)


if __name__ == "__main__":
    unittest.main()

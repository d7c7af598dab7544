import asyncio
import unittest
import os
import sys
from unittest import mock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from voxride.events import SpeechEvent, SpeechAlternative
from voxride.executor import ExecutionResult
from voxride.gate import GateOutcome, REASON_UNINTELLIGIBLE, REASON_NO_MATCH
from voxride.session import build_session, SessionUnavailableError, STATE_IDLE, STATE_LISTENING
from voxride.settings import SessionSettings


class FakeEngine:
    def __init__(self, supported=True):
        self.supported = supported
        self.on_event = None
        self.starts = 0
        self.stops = 0
        self.phrases = None

    def is_supported(self):
        return self.supported

    def start(self):
        self.starts += 1

    def stop(self):
        self.stops += 1

    def set_phrases(self, phrases):
        self.phrases = phrases


class FlakyEngine(FakeEngine):
    # opens, then dies straight away
    def start(self):
        super().start()
        self.on_event(SpeechEvent.start())
        self.on_event(SpeechEvent.end())


class Recorder:
    def __init__(self, session, *names):
        self.events = []
        for name in names:
            session.on(name, lambda payload, n=name: self.events.append((n, payload)))

    def names(self):
        return [n for n, _ in self.events]


class TestSessionResolution(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.pressed = []

        def executor(action):
            self.pressed.append(action)
            return ExecutionResult(True)

        self.session = build_session(settings=SessionSettings(rate_limit_ms=100), executor=executor)
        self.rec = Recorder(self.session, "command", "lowConfidence", "noMatch", "executed")

    async def asyncTearDown(self):
        await self.session.shutdown()

    async def test_turn_left_executes(self):
        d = await self.session.simulate("turn left", 0.95)
        self.assertEqual(d.outcome, GateOutcome.EXECUTE)
        self.assertEqual(self.pressed, ["left"])
        self.assertEqual(self.rec.names(), ["executed", "command"])
        payload = self.rec.events[1][1]
        self.assertEqual(payload["command"]["action"], "left")
        self.assertEqual(payload["dispatch"]["status"], "immediate")

    async def test_fuzzy_transcript_executes(self):
        d = await self.session.simulate("trn lft", 0.9)
        self.assertEqual(d.outcome, GateOutcome.EXECUTE)
        self.assertEqual(self.pressed, ["left"])

    async def test_banana_is_no_match(self):
        d = await self.session.simulate("banana", 0.95)
        self.assertEqual(d.reason, REASON_NO_MATCH)
        self.assertEqual(self.pressed, [])
        self.assertEqual(self.rec.names(), ["noMatch"])

    async def test_ride_on_low_confidence_suggests(self):
        d = await self.session.simulate("ride on", 0.68)
        self.assertEqual(d.outcome, GateOutcome.SUGGEST)
        self.assertEqual(self.pressed, [])
        name, payload = self.rec.events[0]
        self.assertEqual(name, "lowConfidence")
        self.assertEqual(payload["suggested_command"]["action"], "6")

    async def test_unintelligible(self):
        d = await self.session.simulate("turn left", 0.5)
        self.assertEqual(d.reason, REASON_UNINTELLIGIBLE)
        self.assertEqual(self.rec.names(), ["noMatch"])

    async def test_best_alternative_used(self):
        event = SpeechEvent.final("banana", 0.70, [SpeechAlternative("turn right", 0.92)])
        d = await self.session.handle_event(event)
        self.assertEqual(d.outcome, GateOutcome.EXECUTE)
        self.assertEqual(self.pressed, ["right"])
        self.assertEqual(self.session.last_transcript, "turn right")

    async def test_recognition_log_newest_first(self):
        await self.session.simulate("banana", 0.95)
        await self.session.simulate("turn left", 0.95)
        log = self.session.recognition_log()
        self.assertEqual([r["transcript"] for r in log], ["turn left", "banana"])
        self.assertEqual(log[0]["matched"], "Turn left")
        self.assertIsNone(log[1]["matched"])

    async def test_observer_errors_do_not_break_processing(self):
        def broken(payload):
            raise RuntimeError("observer bug")

        self.session.on("command", broken)
        d = await self.session.simulate("turn left", 0.95)
        self.assertEqual(d.outcome, GateOutcome.EXECUTE)
        self.assertEqual(self.pressed, ["left"])

    async def test_unknown_observer_event(self):
        with self.assertRaises(ValueError):
            self.session.on("nope", print)

    async def test_settings_and_registry(self):
        self.assertEqual(self.session.set_threshold(0.99), 0.95)
        self.assertTrue(self.session.set_trainer_mode(True))
        self.assertEqual(self.session.status()["effective_threshold"], 0.80)
        self.session.add_command("attack", "space", "Attack", 1)
        d = await self.session.simulate("attack", 0.95)
        self.assertEqual(d.outcome, GateOutcome.EXECUTE)
        self.assertTrue(self.session.remove_command("attack"))


class TestSessionLifecycle(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = FakeEngine()
        settings = SessionSettings(test_mode=True, restart_delay_ms=10, max_restart_attempts=2)
        self.session = build_session(settings=settings, executor=lambda a: ExecutionResult(True), engine=self.engine)
        self.rec = Recorder(self.session, "start", "stop", "error", "interim")

    async def asyncTearDown(self):
        await self.session.shutdown()

    async def test_start_requires_engine(self):
        session = build_session(executor=lambda a: ExecutionResult(True))
        with self.assertRaises(SessionUnavailableError):
            await session.start()
        unsupported = build_session(executor=lambda a: ExecutionResult(True), engine=FakeEngine(supported=False))
        with self.assertRaises(SessionUnavailableError):
            await unsupported.start()

    async def test_start_stop(self):
        self.assertTrue(await self.session.start())
        self.assertEqual(self.session.state, STATE_LISTENING)
        self.assertFalse(await self.session.start())
        self.assertTrue(await self.session.stop())
        self.assertEqual(self.session.state, STATE_IDLE)
        self.assertEqual((self.engine.starts, self.engine.stops), (1, 1))
        self.assertEqual(self.rec.names(), ["stop"])
        self.assertFalse(await self.session.stop())

    async def test_engine_events_flow_through_post_event(self):
        await self.session.start()
        self.engine.on_event(SpeechEvent.start())
        self.engine.on_event(SpeechEvent.interim("turn"))
        await asyncio.sleep(0.05)
        self.assertEqual(self.rec.names(), ["start", "interim"])

    async def test_end_while_listening_restarts(self):
        await self.session.start()
        await self.session.handle_event(SpeechEvent.end())
        self.assertEqual(self.session.restart_attempts, 1)
        await asyncio.sleep(0.05)
        self.assertEqual(self.engine.starts, 2)
        # a bare start is not proof of recovery
        await self.session.handle_event(SpeechEvent.start())
        self.assertEqual(self.session.restart_attempts, 1)
        await self.session.handle_event(SpeechEvent.interim("turn"))
        self.assertEqual(self.session.restart_attempts, 0)

    async def test_backoff_doubles(self):
        delays = []

        def record(delay):
            delays.append(delay)
            return asyncio.sleep(0)

        self.session.settings.max_restart_attempts = 4
        self.session._restart_after = record
        await self.session.start()
        for _ in range(5):
            await self.session.handle_event(SpeechEvent.start())
            await self.session.handle_event(SpeechEvent.end())
        await asyncio.sleep(0)
        self.assertEqual([round(d * 1000) for d in delays], [10, 20, 40, 80])
        self.assertEqual(self.session.state, STATE_IDLE)

    async def test_restart_cap_goes_idle(self):
        await self.session.start()
        for _ in range(3):
            await self.session.handle_event(SpeechEvent.end())
            await asyncio.sleep(0.06)
        self.assertEqual(self.session.state, STATE_IDLE)
        errors = [p for n, p in self.rec.events if n == "error"]
        self.assertEqual(errors[-1]["code"], "engine-disconnected")
        self.assertTrue(errors[-1]["fatal"])
        self.assertEqual(self.rec.names()[-1], "stop")

    async def test_engine_dying_after_start_hits_cap(self):
        engine = FlakyEngine()
        settings = SessionSettings(test_mode=True, restart_delay_ms=1, max_restart_attempts=3)
        session = build_session(settings=settings, executor=lambda a: ExecutionResult(True), engine=engine)
        rec = Recorder(session, "error", "stop")
        await session.start()
        await asyncio.sleep(0.3)

        self.assertEqual(engine.starts, 4)
        self.assertEqual(session.state, STATE_IDLE)
        self.assertEqual(rec.names(), ["error", "stop"])
        self.assertEqual(rec.events[0][1]["code"], "engine-disconnected")
        await session.shutdown()

    async def test_async_observer_failure_is_logged(self):
        seen = []

        async def good(payload):
            seen.append(payload)

        async def bad(payload):
            raise RuntimeError("observer bug")

        self.session.on("start", good)
        self.session.on("start", bad)
        with mock.patch("voxride.session.error") as logged:
            await self.session.handle_event(SpeechEvent.start())
            await asyncio.sleep(0.01)
        self.assertEqual(seen, [{}])
        self.assertEqual(self.session._observer_tasks, set())
        self.assertTrue(any("observer bug" in c.args[0] for c in logged.call_args_list))

    async def test_end_while_idle_does_not_restart(self):
        await self.session.handle_event(SpeechEvent.end())
        self.assertEqual(self.session.restart_attempts, 0)
        self.assertEqual(self.engine.starts, 0)

    async def test_fatal_error_goes_idle(self):
        await self.session.start()
        await self.session.handle_event(SpeechEvent.failure("not-allowed"))
        self.assertEqual(self.session.state, STATE_IDLE)
        self.assertEqual(self.engine.stops, 1)
        (err_name, err), (stop_name, stop) = self.rec.events[-2:]
        self.assertEqual((err_name, stop_name), ("error", "stop"))
        self.assertTrue(err["fatal"])
        self.assertEqual(stop["reason"], "not-allowed")
        # the trailing end must not restart an idle session
        await self.session.handle_event(SpeechEvent.end())
        self.assertEqual(self.engine.starts, 1)
        self.assertEqual(self.rec.names().count("stop"), 1)

    async def test_no_speech_ignored(self):
        await self.session.start()
        await self.session.handle_event(SpeechEvent.failure("no-speech"))
        self.assertEqual(self.rec.names(), [])
        await self.session.handle_event(SpeechEvent.failure("network"))
        self.assertEqual(self.rec.events[-1][1]["fatal"], False)
        self.assertEqual(self.session.state, STATE_LISTENING)

    async def test_registry_changes_reach_engine(self):
        self.session.add_command("attack", "space")
        self.assertIn("attack", self.engine.phrases)
        self.session.remove_command("attack")
        self.assertNotIn("attack", self.engine.phrases)


if __name__ == "__main__":
    unittest.main()

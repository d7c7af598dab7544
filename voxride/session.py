"""
Session controller: lifecycle of the speech engine and the single entry point
for speech events.

Every engine event goes through ``handle_event``. Final transcripts are
normalized, matched against the registry and gated; accepted commands are
handed to the dispatcher, suggestions and rejections are only reported to
observers. Events are processed strictly one after another on the event loop.

The speech engine is duck-typed: it needs ``start()``, ``stop()``,
``is_supported()`` and an ``on_event`` attribute the session fills in with
``post_event`` (safe to call from the engine's own thread).
"""
import asyncio
import inspect
import contextlib
import functools
import time
from typing import Callable

from .config import RECOGNITION_LOG_SIZE, FATAL_ENGINE_ERRORS
from .dispatcher import Dispatcher, DispatchResult
from .events import (
    SpeechEvent,
    SpeechEventType,
    OBSERVER_EVENTS,
    EVENT_START,
    EVENT_STOP,
    EVENT_INTERIM,
    EVENT_COMMAND,
    EVENT_LOW_CONFIDENCE,
    EVENT_NO_MATCH,
    EVENT_ERROR,
    EVENT_EXECUTED,
)
from .executor import KeyboardExecutor
from .gate import ConfidenceGate, GateDecision, GateOutcome
from .matcher import Matcher
from .normalizer import normalize
from .registry import CommandRegistry, Command, default_registry
from .settings import SessionSettings
from .logui import ui_state, ui_event, debug, info, warn, error


STATE_IDLE = "idle"
STATE_LISTENING = "listening"

ERROR_MESSAGES = {
    "audio-capture": "No microphone found. Please check your audio settings.",
    "not-allowed": "Microphone access denied. Please grant permission in system settings.",
    "service-not-allowed": "Speech service not allowed.",
    "engine-disconnected": "Voice recognition disconnected. Please restart manually.",
}


class SessionUnavailableError(RuntimeError):
    pass


class SessionController:
    def __init__(
        self,
        registry: CommandRegistry,
        dispatcher: Dispatcher,
        settings: SessionSettings | None = None,
        engine=None,
    ):
        self.registry = registry
        self.settings = settings or dispatcher.settings
        self.dispatcher = dispatcher
        self.dispatcher.settings = self.settings
        if self.dispatcher.on_result is None:
            self.dispatcher.on_result = self._on_dispatch_result
        self.matcher = Matcher(registry)
        self.gate = ConfidenceGate(self.settings)

        self.engine = None
        if engine is not None:
            self.attach_engine(engine)

        self.state = STATE_IDLE
        self.last_transcript = ""
        self.last_confidence = 0.0
        self._recognition_log: list[dict] = []
        self._observers: dict[str, list[Callable]] = {name: [] for name in OBSERVER_EVENTS}
        self._observer_tasks: set[asyncio.Future] = set()

        self._lock = asyncio.Lock()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self._restart_attempts = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = asyncio.Event()

    @property
    def listening(self) -> bool:
        return self.state == STATE_LISTENING

    @property
    def restart_attempts(self) -> int:
        return self._restart_attempts

    # ------------------- Observers -------------------
    def on(self, name: str, callback: Callable):
        if name not in self._observers:
            raise ValueError(f"Unknown event: {name}")
        self._observers[name].append(callback)

    def off(self, name: str, callback: Callable):
        with contextlib.suppress(KeyError, ValueError):
            self._observers[name].remove(callback)

    def _emit(self, name: str, payload: dict | None = None):
        payload = payload or {}
        ui_event(name, payload)
        for callback in list(self._observers.get(name, [])):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._observer_tasks.add(task)
                    task.add_done_callback(functools.partial(self._observer_done, name))
            except Exception as e:
                error(f"Observer for '{name}' failed: {e}")

    def _observer_done(self, name: str, task: asyncio.Future):
        self._observer_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            error(f"Observer for '{name}' failed: {exc}")

    def _on_dispatch_result(self, result: DispatchResult):
        self._emit(EVENT_EXECUTED, result.to_dict())

    # ------------------- Engine lifecycle -------------------
    def attach_engine(self, engine):
        self.engine = engine
        engine.on_event = self.post_event

    async def start(self) -> bool:
        if self.listening:
            warn("Voice recognition already running")
            return False
        if self.engine is None:
            raise SessionUnavailableError("No speech engine configured")
        if not self.engine.is_supported():
            raise SessionUnavailableError("Speech recognition not supported in this environment")

        self._loop = asyncio.get_running_loop()
        self._ensure_consumer()
        self.state = STATE_LISTENING
        self._restart_attempts = 0
        try:
            self.engine.start()
        except Exception as e:
            self.state = STATE_IDLE
            error(f"Failed to start voice recognition: {e}")
            self._emit(EVENT_ERROR, {"error": str(e), "code": "start-failed", "fatal": False})
            return False

        ui_state("LISTENING")
        info("Voice recognition started")
        return True

    async def stop(self) -> bool:
        if not self.listening:
            warn("Voice recognition not running")
            return False

        self.state = STATE_IDLE
        self._cancel_restart()
        if self.engine is not None:
            try:
                self.engine.stop()
            except Exception as e:
                warn(f"Error stopping recognition: {e}")

        ui_state("IDLE")
        info("Voice recognition stopped")
        self._emit(EVENT_STOP, {"reason": "user"})
        return True

    async def shutdown(self):
        if self.listening:
            await self.stop()
        self._cancel_restart()
        await self.dispatcher.close(drain=True)
        if self._observer_tasks:
            # failures are already logged by _observer_done
            await asyncio.gather(*list(self._observer_tasks), return_exceptions=True)
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
        self._closed.set()
        info("Session closed")

    async def wait_closed(self):
        await self._closed.wait()

    # ------------------- Event intake -------------------
    def post_event(self, event: SpeechEvent):
        loop = self._loop
        if loop is None or loop.is_closed():
            warn(f"Dropped speech event {event.type.value}: session loop not running")
            return
        loop.call_soon_threadsafe(self._inbox.put_nowait, event)

    def _ensure_consumer(self):
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self._consume())

    async def _consume(self):
        while True:
            event = await self._inbox.get()
            try:
                await self.handle_event(event)
            except Exception as e:
                error(f"Speech event {event.type.value} failed: {e}")

    async def handle_event(self, event: SpeechEvent) -> GateDecision | None:
        async with self._lock:
            if event.type == SpeechEventType.START:
                self._emit(EVENT_START, {})
            elif event.type == SpeechEventType.INTERIM:
                self._mark_recognizing()
                self._emit(EVENT_INTERIM, {"transcript": event.transcript})
            elif event.type == SpeechEventType.FINAL:
                self._mark_recognizing()
                return await self._handle_final(event)
            elif event.type == SpeechEventType.ERROR:
                self._handle_error(event)
            elif event.type == SpeechEventType.END:
                self._handle_end()
        return None

    async def simulate(self, transcript: str, confidence: float = 0.95) -> GateDecision:
        info(f'Simulating voice command: "{transcript}" (confidence: {confidence})')
        return await self.handle_event(SpeechEvent.final(transcript, confidence))

    # ------------------- Resolution -------------------
    async def _handle_final(self, event: SpeechEvent) -> GateDecision:
        best = event.best_alternative()
        transcript = best.transcript or ""
        confidence = float(best.confidence or 0.0)
        normalized = normalize(transcript)

        self.last_transcript = transcript
        self.last_confidence = confidence
        info(f'Heard: "{transcript}" (confidence: {confidence * 100:.1f}%)')

        candidate = self.matcher.match(normalized, confidence)
        decision = self.gate.decide(candidate, confidence)

        payload = {
            "transcript": transcript,
            "normalized_transcript": normalized,
            "confidence": confidence,
        }

        if decision.outcome == GateOutcome.EXECUTE:
            command = decision.candidate.command
            info(f'Voice command: "{decision.candidate.matched_phrase}" -> {command.description} ({command.action})')
            result = await self.dispatcher.submit(command.action, command.description)
            self._emit(
                EVENT_COMMAND,
                {
                    **payload,
                    "command": command.to_dict(),
                    "matched_phrase": decision.candidate.matched_phrase,
                    "method": decision.candidate.method.value,
                    "score": decision.candidate.score,
                    "dispatch": result.to_dict(),
                },
            )
        elif decision.outcome == GateOutcome.SUGGEST:
            command = decision.candidate.command
            info(f'Low confidence: "{transcript}" -> might be "{command.description}"')
            self._emit(
                EVENT_LOW_CONFIDENCE,
                {
                    **payload,
                    "suggested_command": command.to_dict(),
                    "matched_phrase": decision.candidate.matched_phrase,
                },
            )
        else:
            info(f'No match: "{transcript}" ({decision.reason}, confidence: {confidence * 100:.1f}%)')
            self._emit(EVENT_NO_MATCH, {**payload, "reason": decision.reason})

        self._log_recognition(transcript, confidence, decision)
        return decision

    def _log_recognition(self, transcript: str, confidence: float, decision: GateDecision):
        matched = None
        if decision.candidate is not None:
            matched = decision.candidate.command.description
        self._recognition_log.insert(
            0,
            {
                "timestamp": time.time(),
                "transcript": transcript,
                "confidence": confidence,
                "outcome": decision.outcome.value,
                "matched": matched,
            },
        )
        del self._recognition_log[RECOGNITION_LOG_SIZE:]

    # ------------------- Errors and restarts -------------------
    def _handle_error(self, event: SpeechEvent):
        code = event.error or "unknown"
        if code == "no-speech":
            debug("Engine: no speech")
            return

        if code in FATAL_ENGINE_ERRORS:
            error(f"Voice recognition error: {code}")
            was_listening = self.listening
            self.state = STATE_IDLE
            self._cancel_restart()
            if was_listening and self.engine is not None:
                try:
                    self.engine.stop()
                except Exception as e:
                    warn(f"Error stopping recognition: {e}")
            ui_state("ERROR")
            self._emit(EVENT_ERROR, {"error": ERROR_MESSAGES.get(code, code), "code": code, "fatal": True})
            if was_listening:
                self._emit(EVENT_STOP, {"reason": code})
            return

        warn(f"Voice recognition error: {code}")
        self._emit(EVENT_ERROR, {"error": f"Speech recognition error: {code}", "code": code, "fatal": False})

    def _mark_recognizing(self):
        # an engine only counts as recovered once it produces speech results
        if self._restart_attempts:
            debug(f"Engine recovered after {self._restart_attempts} restart(s)")
            self._restart_attempts = 0

    def _handle_end(self):
        if not self.listening:
            debug("Engine ended")
            return
        self._attempt_restart()

    def _attempt_restart(self):
        limit = self.settings.max_restart_attempts
        if self._restart_attempts >= limit:
            error("Max restart attempts reached, stopping voice recognition")
            self.state = STATE_IDLE
            ui_state("IDLE")
            self._emit(
                EVENT_ERROR,
                {"error": ERROR_MESSAGES["engine-disconnected"], "code": "engine-disconnected", "fatal": True},
            )
            self._emit(EVENT_STOP, {"reason": "engine-disconnected"})
            return

        self._restart_attempts += 1
        delay = self.settings.restart_delay_ms * (2 ** (self._restart_attempts - 1)) / 1000.0
        info(f"Restarting voice recognition (attempt {self._restart_attempts}/{limit}) in {int(delay * 1000)}ms")
        self._cancel_restart()
        self._restart_task = asyncio.get_running_loop().create_task(self._restart_after(delay))

    async def _restart_after(self, delay: float):
        await asyncio.sleep(delay)
        if not self.listening or self.engine is None:
            return
        try:
            self.engine.start()
        except Exception as e:
            warn(f"Failed to restart: {e}")
            self._attempt_restart()

    def _cancel_restart(self):
        task = self._restart_task
        self._restart_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------- Settings -------------------
    def set_threshold(self, value: float) -> float:
        v = self.settings.set_threshold(value)
        info(f"Confidence threshold set to: {v}")
        return v

    def set_trainer_mode(self, enabled: bool) -> bool:
        v = self.settings.set_trainer_mode(enabled)
        info(f"Trainer mode {'enabled' if v else 'disabled'} (threshold: {self.settings.effective_threshold})")
        return v

    def set_rate_limit(self, ms: int) -> int:
        v = self.settings.set_rate_limit(ms)
        info(f"Rate limit set to: {v}ms")
        return v

    def set_max_queue_size(self, size: int) -> int:
        v = self.settings.set_max_queue_size(size)
        info(f"Max queue size set to: {v}")
        return v

    def set_test_mode(self, enabled: bool) -> bool:
        v = self.settings.set_test_mode(enabled)
        info(f"Test mode {'enabled' if v else 'disabled'}")
        return v

    def set_key_press_delay(self, ms: int) -> int:
        v = self.settings.set_key_press_delay(ms)
        setter = getattr(self.dispatcher.executor, "set_key_press_delay", None)
        if setter is not None:
            setter(v)
        return v

    # ------------------- Registry -------------------
    def add_command(self, phrase: str, action: str, description: str = "", priority: int = 2) -> Command:
        cmd = self.registry.add(phrase, action, description, priority)
        self._refresh_engine_phrases()
        return cmd

    def remove_command(self, phrase: str) -> bool:
        removed = self.registry.remove(phrase)
        if removed:
            self._refresh_engine_phrases()
        return removed

    def _refresh_engine_phrases(self):
        setter = getattr(self.engine, "set_phrases", None)
        if setter is not None:
            setter(self.registry.phrases())

    # ------------------- Queries -------------------
    def status(self) -> dict:
        return {
            "state": self.state,
            "listening": self.listening,
            "trainer_mode": self.settings.trainer_mode,
            "test_mode": self.settings.test_mode,
            "confidence_threshold": self.settings.confidence_threshold,
            "effective_threshold": self.settings.effective_threshold,
            "low_confidence_threshold": self.settings.low_confidence_threshold,
            "last_transcript": self.last_transcript,
            "last_confidence": self.last_confidence,
            "restart_attempts": self._restart_attempts,
            "queue": self.dispatcher.queue_status(),
        }

    def recognition_log(self) -> list[dict]:
        return list(self._recognition_log)

    def history(self) -> list[dict]:
        return [e.to_dict() for e in self.dispatcher.get_history()]


def build_session(
    settings: SessionSettings | None = None,
    registry: CommandRegistry | None = None,
    executor=None,
    engine=None,
) -> SessionController:
    settings = settings or SessionSettings()
    registry = registry if registry is not None else default_registry()
    executor = executor or KeyboardExecutor(settings.key_press_delay_ms)
    dispatcher = Dispatcher(executor, settings=settings)
    return SessionController(registry, dispatcher, settings=settings, engine=engine)

from dataclasses import dataclass, field
from enum import Enum


class SpeechEventType(str, Enum):
    START = "start"
    INTERIM = "interim"
    FINAL = "final"
    ERROR = "error"
    END = "end"


@dataclass
class SpeechAlternative:
    transcript: str
    confidence: float = 0.0


@dataclass
class SpeechEvent:
    type: SpeechEventType
    transcript: str = ""
    confidence: float = 0.0
    alternatives: list[SpeechAlternative] = field(default_factory=list)
    error: str | None = None

    def best_alternative(self) -> SpeechAlternative:
        # first entry wins ties, like the engine's own ordering
        best = SpeechAlternative(self.transcript, float(self.confidence or 0.0))
        candidates = self.alternatives or []
        if candidates and not self.transcript:
            best = candidates[0]
            candidates = candidates[1:]
        for alt in candidates:
            if alt.confidence > best.confidence:
                best = alt
        return best

    @classmethod
    def start(cls):
        return cls(SpeechEventType.START)

    @classmethod
    def end(cls):
        return cls(SpeechEventType.END)

    @classmethod
    def interim(cls, transcript: str):
        return cls(SpeechEventType.INTERIM, transcript=transcript)

    @classmethod
    def final(cls, transcript: str, confidence: float, alternatives: list[SpeechAlternative] | None = None):
        return cls(SpeechEventType.FINAL, transcript=transcript, confidence=confidence, alternatives=list(alternatives or []))

    @classmethod
    def failure(cls, code: str):
        return cls(SpeechEventType.ERROR, error=code)


# notifications produced for observers
EVENT_START = "start"
EVENT_STOP = "stop"
EVENT_INTERIM = "interim"
EVENT_COMMAND = "command"
EVENT_LOW_CONFIDENCE = "lowConfidence"
EVENT_NO_MATCH = "noMatch"
EVENT_ERROR = "error"
EVENT_EXECUTED = "executed"

OBSERVER_EVENTS = (
    EVENT_START,
    EVENT_STOP,
    EVENT_INTERIM,
    EVENT_COMMAND,
    EVENT_LOW_CONFIDENCE,
    EVENT_NO_MATCH,
    EVENT_ERROR,
    EVENT_EXECUTED,
)

from dataclasses import dataclass
from enum import Enum

from .matcher import MatchCandidate
from .settings import SessionSettings


class GateOutcome(str, Enum):
    EXECUTE = "execute"
    SUGGEST = "suggest"
    REJECT = "reject"


REASON_UNINTELLIGIBLE = "unintelligible"
REASON_NO_MATCH = "no_match"
REASON_LOW_CONFIDENCE = "low_confidence"
REASON_ACCEPTED = "accepted"


@dataclass
class GateDecision:
    outcome: GateOutcome
    candidate: MatchCandidate | None
    confidence: float
    reason: str

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "confidence": self.confidence,
            "candidate": self.candidate.to_dict() if self.candidate else None,
        }


class ConfidenceGate:
    def __init__(self, settings: SessionSettings):
        self.settings = settings

    def decide(self, candidate: MatchCandidate | None, confidence: float) -> GateDecision:
        conf = float(confidence or 0.0)
        if conf < self.settings.low_confidence_threshold:
            return GateDecision(GateOutcome.REJECT, None, conf, REASON_UNINTELLIGIBLE)
        if candidate is None:
            return GateDecision(GateOutcome.REJECT, None, conf, REASON_NO_MATCH)
        if conf >= self.settings.effective_threshold:
            return GateDecision(GateOutcome.EXECUTE, candidate, conf, REASON_ACCEPTED)
        return GateDecision(GateOutcome.SUGGEST, candidate, conf, REASON_LOW_CONFIDENCE)

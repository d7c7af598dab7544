"""
Phrase matching of normalized transcripts against the command registry.

Commands are scanned in ascending priority order. An exact phrase returns at
once; otherwise the lowest-scoring substring or fuzzy candidate wins, and a
later command only displaces the current best with a strictly lower score.
Substring scores (length difference) and fuzzy scores (edit distance) are
compared on the same scale.
"""
import math
from dataclasses import dataclass
from enum import Enum

from rapidfuzz.distance import Levenshtein

from .config import FUZZY_MIN_DISTANCE, FUZZY_ERROR_RATIO
from .registry import Command, CommandRegistry
from .logui import debug


class MatchMethod(str, Enum):
    EXACT = "exact"
    SUBSTRING = "substring"
    FUZZY = "fuzzy"


@dataclass
class MatchCandidate:
    command: Command
    matched_phrase: str
    score: int
    method: MatchMethod

    def to_dict(self) -> dict:
        return {
            "action": self.command.action,
            "description": self.command.description,
            "priority": self.command.priority,
            "matched_phrase": self.matched_phrase,
            "score": self.score,
            "method": self.method.value,
        }


def levenshtein(a: str, b: str) -> int:
    return Levenshtein.distance(a or "", b or "")


def max_distance(phrase: str) -> int:
    return max(FUZZY_MIN_DISTANCE, math.floor(len(phrase) * FUZZY_ERROR_RATIO))


class Matcher:
    def __init__(self, registry: CommandRegistry):
        self.registry = registry

    def match(self, transcript: str, confidence: float | None = None) -> MatchCandidate | None:
        t = transcript or ""
        if not t:
            return None

        best: MatchCandidate | None = None
        best_score = math.inf

        for command in self.registry.by_priority():
            for phrase in command.phrases:
                if t == phrase:
                    debug(f'Match: exact "{phrase}" -> {command.action}')
                    return MatchCandidate(command, phrase, 0, MatchMethod.EXACT)

                if phrase in t or t in phrase:
                    score = abs(len(t) - len(phrase))
                    if score < best_score:
                        best_score = score
                        best = MatchCandidate(command, phrase, score, MatchMethod.SUBSTRING)

                distance = levenshtein(t, phrase)
                if distance <= max_distance(phrase) and distance < best_score:
                    best_score = distance
                    best = MatchCandidate(command, phrase, distance, MatchMethod.FUZZY)

        if best is None:
            debug(f'Match: none for "{t}" (confidence={confidence})')
        else:
            debug(f'Match: {best.method.value} "{best.matched_phrase}" score={best.score} -> {best.command.action}')
        return best

from dataclasses import dataclass, asdict

from .config import (
    CONFIDENCE_THRESHOLD,
    CONFIDENCE_THRESHOLD_RANGE,
    TRAINER_MODE_THRESHOLD,
    LOW_CONFIDENCE_THRESHOLD,
    RATE_LIMIT_MS,
    RATE_LIMIT_RANGE_MS,
    MAX_QUEUE_SIZE,
    MAX_QUEUE_RANGE,
    KEY_PRESS_DELAY_MS,
    KEY_PRESS_DELAY_RANGE_MS,
    HISTORY_SIZE,
    MAX_RESTART_ATTEMPTS,
    RESTART_DELAY_MS,
    clamp,
)


@dataclass
class SessionSettings:
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    trainer_mode: bool = False
    trainer_mode_threshold: float = TRAINER_MODE_THRESHOLD
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD
    rate_limit_ms: int = RATE_LIMIT_MS
    max_queue_size: int = MAX_QUEUE_SIZE
    test_mode: bool = False
    key_press_delay_ms: int = KEY_PRESS_DELAY_MS
    history_size: int = HISTORY_SIZE
    max_restart_attempts: int = MAX_RESTART_ATTEMPTS
    restart_delay_ms: int = RESTART_DELAY_MS

    def __post_init__(self):
        self.set_threshold(self.confidence_threshold)
        self.set_rate_limit(self.rate_limit_ms)
        self.set_max_queue_size(self.max_queue_size)
        self.set_key_press_delay(self.key_press_delay_ms)
        self.history_size = max(1, int(self.history_size))
        self.max_restart_attempts = max(0, int(self.max_restart_attempts))
        self.restart_delay_ms = max(0, int(self.restart_delay_ms))

    @property
    def effective_threshold(self) -> float:
        return self.trainer_mode_threshold if self.trainer_mode else self.confidence_threshold

    @property
    def rate_limit_seconds(self) -> float:
        return self.rate_limit_ms / 1000.0

    def set_threshold(self, value: float) -> float:
        self.confidence_threshold = float(clamp(float(value), CONFIDENCE_THRESHOLD_RANGE))
        return self.confidence_threshold

    def set_trainer_mode(self, enabled: bool) -> bool:
        self.trainer_mode = bool(enabled)
        return self.trainer_mode

    def set_rate_limit(self, ms: int) -> int:
        self.rate_limit_ms = int(clamp(int(ms), RATE_LIMIT_RANGE_MS))
        return self.rate_limit_ms

    def set_max_queue_size(self, size: int) -> int:
        self.max_queue_size = int(clamp(int(size), MAX_QUEUE_RANGE))
        return self.max_queue_size

    def set_test_mode(self, enabled: bool) -> bool:
        self.test_mode = bool(enabled)
        return self.test_mode

    def set_key_press_delay(self, ms: int) -> int:
        self.key_press_delay_ms = int(clamp(int(ms), KEY_PRESS_DELAY_RANGE_MS))
        return self.key_press_delay_ms

    def to_dict(self) -> dict:
        d = asdict(self)
        d["effective_threshold"] = self.effective_threshold
        return d

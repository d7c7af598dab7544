import time
from dataclasses import dataclass

from .config import KEY_PRESS_DELAY_MS, KEY_PRESS_DELAY_RANGE_MS, clamp
from .logui import debug, warn, error


# logical key name -> pyautogui key name
KEY_MAP = {
    "left": "left",
    "right": "right",
    "up": "up",
    "down": "down",
    "space": "space",
    "escape": "esc",
    "tab": "tab",
    "pageup": "pageup",
    "pagedown": "pagedown",
}
KEY_MAP.update({f"f{i}": f"f{i}" for i in range(1, 11)})
KEY_MAP.update({str(i): str(i) for i in range(10)})
KEY_MAP.update({chr(c): chr(c) for c in range(ord("a"), ord("z") + 1)})

PERMISSION_ERROR = "ACCESSIBILITY_PERMISSION_REQUIRED"


@dataclass
class ExecutionResult:
    success: bool
    error: str | None = None


def available_keys() -> list[str]:
    return list(KEY_MAP.keys())


def _load_pyautogui():
    import pyautogui

    pyautogui.FAILSAFE = False
    pyautogui.PAUSE = 0
    return pyautogui


class KeyboardExecutor:
    def __init__(self, key_press_delay_ms: int = KEY_PRESS_DELAY_MS, backend=None):
        self.key_press_delay_ms = int(clamp(key_press_delay_ms, KEY_PRESS_DELAY_RANGE_MS))
        self._backend = backend

    def set_key_press_delay(self, ms: int) -> int:
        self.key_press_delay_ms = int(clamp(int(ms), KEY_PRESS_DELAY_RANGE_MS))
        return self.key_press_delay_ms

    def is_available(self) -> bool:
        try:
            self._get_backend()
            return True
        except Exception as e:
            warn(f"Keyboard backend unavailable: {e}")
            return False

    def _get_backend(self):
        if self._backend is None:
            self._backend = _load_pyautogui()
        return self._backend

    def __call__(self, action: str) -> ExecutionResult:
        key = KEY_MAP.get((action or "").strip().lower())
        if key is None:
            warn(f"Unknown key: {action}")
            return ExecutionResult(False, f"Unknown key: {action}")

        try:
            backend = self._get_backend()
            backend.keyDown(key)
            time.sleep(self.key_press_delay_ms / 1000.0)
            backend.keyUp(key)
        except PermissionError as e:
            error(f"Key press {action} denied: {e}")
            return ExecutionResult(False, PERMISSION_ERROR)
        except Exception as e:
            error(f"Key press {action} failed: {e}")
            return ExecutionResult(False, str(e) or e.__class__.__name__)

        debug(f"Pressed {key}")
        return ExecutionResult(True)

import os
import sys
import json
from datetime import datetime

# Console logger plus the line protocol read by a UI shell wrapping the process:
#   STATE:<name>
#   EVENT:<name>:<json payload>

LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}

UI_MODE = "--ui" in sys.argv
LOG_LEVEL = os.environ.get("VOXRIDE_LOG", "INFO").upper()


def configure(level: str | None = None, ui: bool | None = None):
    global LOG_LEVEL, UI_MODE
    if level:
        lvl = level.upper()
        if lvl == "WARNING":
            lvl = "WARN"
        if lvl in LEVELS:
            LOG_LEVEL = lvl
    if ui is not None:
        UI_MODE = bool(ui)


def ui_state(name: str):
    if UI_MODE:
        print(f"STATE:{name}", flush=True)


def ui_event(name: str, payload: dict | None = None):
    if not UI_MODE:
        return
    try:
        body = json.dumps(payload or {}, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        body = "{}"
    print(f"EVENT:{name}:{body}", flush=True)


def _ts():
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def enabled(level: str) -> bool:
    return LEVELS.get(level, 20) >= LEVELS.get(LOG_LEVEL, 20)


def log(level: str, msg: str):
    if enabled(level):
        print(f"{_ts()} [{level:<5}] {msg}", flush=True)


def debug(msg):
    log("DEBUG", msg)


def info(msg):
    log("INFO", msg)


def warn(msg):
    log("WARN", msg)


def error(msg):
    log("ERROR", msg)

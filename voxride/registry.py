import os
import csv
from dataclasses import dataclass

from .config import DEFAULT_COMMANDS, COMMAND_DESCRIPTIONS
from .normalizer import normalize
from .logui import info, warn, debug


@dataclass(frozen=True)
class Command:
    phrases: tuple[str, ...]
    action: str
    description: str = ""
    priority: int = 2

    def __post_init__(self):
        if isinstance(self.phrases, str):
            raise ValueError("phrases must be a sequence of strings, not a single string")
        cleaned = []
        for p in self.phrases:
            n = normalize(p)
            if n and n not in cleaned:
                cleaned.append(n)
        if not cleaned:
            raise ValueError("command needs at least one non-empty phrase")
        action = (self.action or "").strip().lower()
        if not action:
            raise ValueError("command needs an action")
        priority = int(self.priority)
        if priority < 1:
            raise ValueError(f"priority must be >= 1, got {self.priority}")
        object.__setattr__(self, "phrases", tuple(cleaned))
        object.__setattr__(self, "action", action)
        object.__setattr__(self, "description", self.description or COMMAND_DESCRIPTIONS.get(action, action))
        object.__setattr__(self, "priority", priority)

    @property
    def primary_phrase(self) -> str:
        return self.phrases[0]

    def to_dict(self) -> dict:
        return {
            "phrases": list(self.phrases),
            "action": self.action,
            "description": self.description,
            "priority": self.priority,
        }


class CommandRegistry:
    def __init__(self, commands: list[Command] | None = None):
        self._commands: list[Command] = list(commands or [])

    def __len__(self):
        return len(self._commands)

    def lookup(self) -> list[Command]:
        return list(self._commands)

    def by_priority(self) -> list[Command]:
        return sorted(self._commands, key=lambda c: c.priority)

    def phrases(self) -> list[str]:
        out = []
        for c in self._commands:
            for p in c.phrases:
                if p not in out:
                    out.append(p)
        return out

    def find(self, phrase: str) -> Command | None:
        key = normalize(phrase)
        for c in self._commands:
            if c.primary_phrase == key:
                return c
        return None

    def add(self, phrase: str, action: str, description: str = "", priority: int = 2) -> Command:
        if not normalize(phrase):
            raise ValueError("phrase must not be empty")
        cmd = Command(phrases=(phrase,), action=action, description=description, priority=priority)
        for i, existing in enumerate(self._commands):
            if existing.primary_phrase == cmd.primary_phrase:
                self._commands[i] = cmd
                debug(f'Registry: replaced "{cmd.primary_phrase}" -> {cmd.action}')
                return cmd
        self._commands.append(cmd)
        debug(f'Registry: added "{cmd.primary_phrase}" -> {cmd.action} (p{cmd.priority})')
        return cmd

    def remove(self, phrase: str) -> bool:
        key = normalize(phrase)
        if not key:
            return False
        for i, c in enumerate(self._commands):
            if c.primary_phrase == key:
                del self._commands[i]
                debug(f'Registry: removed "{key}"')
                return True
        return False


def default_registry() -> CommandRegistry:
    return CommandRegistry(
        [
            Command(phrases=tuple(phrases), action=key, description=desc, priority=prio)
            for phrases, key, desc, prio in DEFAULT_COMMANDS
        ]
    )


def load_custom_mappings(registry: CommandRegistry, path: str) -> int:
    if not os.path.exists(path):
        return 0

    added = 0
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            for line_no, row in enumerate(reader, start=1):
                if not row or not (row[0] or "").strip() or row[0].strip().startswith("#"):
                    continue
                if line_no == 1 and row[0].strip().lower() == "phrase":
                    continue
                phrase = row[0].strip().strip('"').strip("'")
                action = row[1].strip() if len(row) >= 2 else ""
                description = row[2].strip() if len(row) >= 3 else ""
                try:
                    priority = int(row[3]) if len(row) >= 4 and row[3].strip() else 2
                    registry.add(phrase, action, description, priority)
                    added += 1
                except ValueError as e:
                    warn(f"{os.path.basename(path)}:{line_no}: skipped ({e})")
    except OSError as e:
        warn(f"Custom commands read failed ({os.path.basename(path)}): {e}")
        return added

    if added:
        info(f"Custom commands loaded: {added} (from {os.path.basename(path)})")
    return added

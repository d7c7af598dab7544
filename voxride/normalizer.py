import re

from .config import NUMBER_WORDS


_NUMBER_RE = re.compile(r"\b(" + "|".join(NUMBER_WORDS) + r")\b", re.IGNORECASE)


def convert_spoken_numbers(text: str) -> str:
    return _NUMBER_RE.sub(lambda m: NUMBER_WORDS[m.group(1).lower()], text or "")


def normalize(text: str | None) -> str:
    t = (text or "").lower().strip()
    if not t:
        return ""
    return convert_spoken_numbers(t)

import datetime as _dt
import re
from typing import Iterable, List


def normalize_date(raw: str) -> str:
    """Return YYYY-MM-DD or blank for unsupported formats (Win32 stores YYYYMMDD)."""
    if not raw:
        return ""
    raw = raw.strip()
    patterns = [
        r"^(?P<y>\d{4})(?P<m>\d{2})(?P<d>\d{2})$",
        r"^(?P<y>\d{4})[-/](?P<m>\d{1,2})[-/](?P<d>\d{1,2})$",
    ]
    for pat in patterns:
        match = re.match(pat, raw)
        if match:
            try:
                dt = _dt.date(int(match.group("y")), int(match.group("m")), int(match.group("d")))
            except ValueError:
                return ""
            return dt.isoformat()
    return ""


# Parenthesized decorations go first; once brackets are stripped they are no longer recognizable.
_DECORATION_PATTERNS = [
    re.compile(r"\(\s*x(?:64|86)\s*\)", re.IGNORECASE),
    re.compile(r"\(\s*User\s*\)", re.IGNORECASE),
    re.compile(r"\(\s*remove only\s*\)", re.IGNORECASE),
    re.compile(r"\s*\(\s*git\s+[0-9a-f]+\s*\)\s*$", re.IGNORECASE),
]
_BRACKETS = re.compile(r"[()\[\]{}]")
_WHITESPACE = re.compile(r"\s+")
_ARCHITECTURE = re.compile(r"\b(?:64|32)-bit\b", re.IGNORECASE)
_EXECUTABLES = re.compile(r"\bExecutables\b", re.IGNORECASE)
_TRADEMARKS = re.compile(r"[®™]")
_TRAILING_VERSION = re.compile(r"(?<=\s)\d+(?:\.\d+)*$")
_PHRASES = [
    re.compile(r"Installed for Current User", re.IGNORECASE),
    re.compile(r"\bversion\b", re.IGNORECASE),
]


def _normalize_once(name: str) -> str:
    text = name
    for pattern in _DECORATION_PATTERNS:
        text = pattern.sub("", text)
    text = _BRACKETS.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    text = text.replace(" - ", "")
    text = _ARCHITECTURE.sub("", text)
    text = _EXECUTABLES.sub("", text)
    text = _TRADEMARKS.sub("", text)
    text = text.rstrip()
    text = _TRAILING_VERSION.sub("", text)
    for pattern in _PHRASES:
        text = pattern.sub("", text)
    return text.strip()


def normalize_app_name(name: str) -> str:
    """Strip branding, architecture and version noise from a display name.

    The rules are applied until the result stops changing, so a normalized
    name always normalizes to itself. Case is preserved; callers compare
    casefolded values.
    """
    if not name:
        return ""
    text = str(name)
    while True:
        cleaned = _normalize_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned


def casefold_key(value: str) -> str:
    return (value or "").strip().casefold()


def percentage(part: int, whole: int, empty: float = 0.0) -> float:
    if whole <= 0:
        return empty
    return round(part / whole * 100, 2)


def unique_casefold(values: Iterable[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for value in values:
        name = str(value).strip()
        if not name:
            continue
        folded = name.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        result.append(name)
    return result

"""
Field paths — dotted/bracket notation parsed into typed segments.

"employee.payments[0].amount" <-> ("employee", "payments", 0, "amount")

Paths are parsed once (and cached) so ignore/transformer matching compares
segments rather than strings.
"""
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from evaluation.proposals.types import MISSING

Segment = Union[str, int]
PathLike = Union[str, tuple]

WILDCARD = "*"

_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+|\*)\]")


@lru_cache(maxsize=4096)
def parse_path(path: str) -> tuple[Segment, ...]:
    """
    Parse a dotted/bracket path into segments.

    Keys become strings, bracket indices become ints. "[*]" is kept as the
    wildcard segment. An empty path is the root: ().
    """
    segments: list[Segment] = []
    for key, index in _TOKEN_RE.findall(path):
        if key:
            segments.append(key)
        elif index == WILDCARD:
            segments.append(WILDCARD)
        else:
            segments.append(int(index))
    return tuple(segments)


def format_path(segments: tuple) -> str:
    """Inverse of parse_path()."""
    out = ""
    for seg in segments:
        if isinstance(seg, int):
            out += f"[{seg}]"
        elif out:
            out += f".{seg}"
        else:
            out = seg
    return out


def as_segments(path: PathLike) -> tuple[Segment, ...]:
    if isinstance(path, tuple):
        return path
    return parse_path(path)


def child_path(parent: tuple, segment: Segment) -> tuple:
    return parent + (segment,)


# ═══════════════════════════════════════════════════════════════════════════════
# PATTERNS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PathPattern:
    """
    A compiled path pattern.

    `*` matches exactly one segment (key or index). A trailing ".*" marks
    the pattern as covering the prefix itself and everything below it.
    """
    source: str
    segments: tuple
    subtree: bool

    @classmethod
    def compile(cls, pattern: str) -> "PathPattern":
        subtree = pattern.endswith(".*")
        body = pattern[:-2] if subtree else pattern
        return cls(source=pattern, segments=parse_path(body), subtree=subtree)

    def _segment_matches(self, pattern_seg: Segment, path_seg: Segment) -> bool:
        if pattern_seg == WILDCARD:
            return True
        if isinstance(pattern_seg, int) or isinstance(path_seg, int):
            return type(pattern_seg) is type(path_seg) and pattern_seg == path_seg
        return pattern_seg == path_seg

    def matches(self, path: PathLike, descendants: bool = False) -> bool:
        """
        Whether `path` is matched.

        With descendants=True (ignore semantics) the pattern also matches
        every path below it. Otherwise only a trailing ".*" extends the
        match below the prefix.
        """
        segments = as_segments(path)
        n = len(self.segments)
        if len(segments) < n:
            return False
        if len(segments) > n and not (descendants or self.subtree):
            return False
        return all(
            self._segment_matches(p, s) for p, s in zip(self.segments, segments)
        )


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> PathPattern:
    return PathPattern.compile(pattern)


def path_matches_pattern(path: PathLike, pattern: str, descendants: bool = False) -> bool:
    return compile_pattern(pattern).matches(path, descendants=descendants)


# ═══════════════════════════════════════════════════════════════════════════════
# VALUE ACCESS
# ═══════════════════════════════════════════════════════════════════════════════

def _step(current: Any, seg: Segment) -> Any:
    if isinstance(seg, int):
        if isinstance(current, list) and 0 <= seg < len(current):
            return current[seg]
        return MISSING
    if isinstance(current, dict) and seg in current:
        return current[seg]
    return MISSING


def get_value_at_path(obj: Any, path: PathLike) -> Any:
    """Value at `path`, or MISSING when any step is absent."""
    segments = as_segments(path)
    if obj is None or not segments:
        return MISSING

    current = obj
    for seg in segments:
        current = _step(current, seg)
        if current is MISSING:
            return MISSING
    return current


def has_value_at_path(obj: Any, path: PathLike) -> bool:
    """True if the path exists, even when the value there is None."""
    return get_value_at_path(obj, path) is not MISSING


def _can_hold(container: Any, seg: Segment) -> bool:
    if isinstance(seg, int):
        return isinstance(container, list)
    return isinstance(container, dict)


def set_value_at_path(obj: dict, path: PathLike, value: Any) -> dict:
    """
    Set `value` at `path`, creating intermediate containers as needed.

    Mutates and returns `obj`.
    """
    segments = as_segments(path)
    if obj is None or not segments:
        return obj

    current = obj
    for seg, nxt in zip(segments, segments[1:]):
        if not _can_hold(current, seg):
            return obj
        container = [] if isinstance(nxt, int) else {}
        if isinstance(seg, int):
            while len(current) <= seg:
                current.append(None)
            if not isinstance(current[seg], (dict, list)):
                current[seg] = container
            current = current[seg]
        else:
            if not isinstance(current.get(seg), (dict, list)):
                current[seg] = container
            current = current[seg]

    last = segments[-1]
    if not _can_hold(current, last):
        return obj
    if isinstance(last, int):
        while len(current) <= last:
            current.append(None)
    current[last] = value
    return obj

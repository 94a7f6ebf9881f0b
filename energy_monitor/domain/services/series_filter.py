"""
Glob filtering of series paths.

Patterns are matched against the series path without the system prefix,
e.g. "source.solar/power.avg". "*" stays within one path segment, "**"
spans segments and "{a,b}" alternates. Comma-separated patterns are OR'd.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from wcmatch import glob

from ..exceptions import InvalidFilterException

MAX_PATTERN_LENGTH = 200

_VALID_PATTERN = re.compile(r"^[a-zA-Z0-9_.*{},/-]+$")
_VALID_CHAR = re.compile(r"[a-zA-Z0-9_.*{},/-]")

GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.FORCEUNIX


def split_brace_aware(text: str) -> List[str]:
    """
    Split on top-level commas only.

    split_brace_aware("source.solar/*,bidi.battery/soc.{avg,min}")
    -> ["source.solar/*", "bidi.battery/soc.{avg,min}"]
    """
    result: List[str] = []
    current = ""
    depth = 0

    for char in text:
        if char == "{":
            depth += 1
            current += char
        elif char == "}":
            depth -= 1
            current += char
        elif char == "," and depth == 0:
            if current.strip():
                result.append(current.strip())
            current = ""
        else:
            current += char

    if current.strip():
        result.append(current.strip())

    return result


def validate_pattern(pattern: str, max_length: int = MAX_PATTERN_LENGTH) -> None:
    """
    Reject malformed patterns with a specific error.

    Raises:
        InvalidFilterException: Empty, too long, disallowed characters or
            unbalanced braces.
    """
    if not pattern:
        raise InvalidFilterException(pattern, "Empty pattern", "Pattern cannot be empty")

    if len(pattern) > max_length:
        raise InvalidFilterException(
            pattern,
            "Pattern too long",
            f"Pattern length {len(pattern)} exceeds maximum of {max_length} characters",
        )

    if not _VALID_PATTERN.match(pattern):
        invalid = "".join(c for c in pattern if not _VALID_CHAR.match(c))
        raise InvalidFilterException(
            pattern,
            "Invalid characters in pattern",
            f'Pattern contains invalid characters: "{invalid}". Only alphanumeric, dots, '
            f"slashes, wildcards (*), braces ({{}}), commas, underscores, and hyphens are allowed.",
        )

    depth = 0
    for char in pattern:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if depth < 0:
            raise InvalidFilterException(
                pattern, "Unmatched closing brace", "Pattern has unmatched '}' brace"
            )
    if depth != 0:
        raise InvalidFilterException(
            pattern,
            "Unmatched opening brace",
            f"Pattern has {depth} unmatched '{{' brace(s)",
        )


@dataclass(frozen=True)
class SeriesFilter:
    """A set of OR'd glob patterns."""
    patterns: Tuple[str, ...]

    @classmethod
    def parse(cls, raw: Optional[str], max_length: int = MAX_PATTERN_LENGTH) -> Optional["SeriesFilter"]:
        """
        Parse a comma-separated filter string.

        Returns None for a missing or blank string, meaning "no filter".
        """
        if raw is None or not raw.strip():
            return None
        patterns = split_brace_aware(raw)
        for pattern in patterns:
            validate_pattern(pattern, max_length)
        return cls(patterns=tuple(patterns))

    @classmethod
    def from_patterns(cls, patterns: Optional[Iterable[str]], max_length: int = MAX_PATTERN_LENGTH) -> Optional["SeriesFilter"]:
        """Build from already split patterns; an empty list means no filter."""
        if not patterns:
            return None
        cleaned = [p.strip() for p in patterns]
        for pattern in cleaned:
            validate_pattern(pattern, max_length)
        return cls(patterns=tuple(cleaned))

    def matches(self, series_path: str) -> bool:
        return glob.globmatch(series_path, list(self.patterns), flags=GLOB_FLAGS)

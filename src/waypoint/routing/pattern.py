"""Path pattern compilation.

Turns a route path such as ``/users/:id/files/*`` into a compiled regex,
the ordered parameter names, and a specificity score used to rank
sibling routes.

Segment syntax::

    users      static  : matches the literal text
    :id        dynamic : matches one non-empty segment
    :lang?     optional: like dynamic, but may be absent (with its "/")
    en?        optional: like static, but may be absent (with its "/")
    *          splat   : matches the rest of the path, "/" included

Compiled patterns are cached: compiling the same pattern twice returns
the same object.
"""

import functools
import re
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import quote, unquote

from waypoint.errors import InvalidPatternError, MissingParamError
from waypoint.http.location import normalize_pathname
from waypoint.routing.route import PathSegment, SegmentKind

# Specificity weights
STATIC_WEIGHT = 3
DYNAMIC_WEIGHT = 2
OPTIONAL_WEIGHT = 1
SPLAT_WEIGHT = 1
INDEX_BONUS = 2
SPLAT_PENALTY = -2

SPLAT_PARAM = "*"

_PARAM_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def parse_pattern(pattern: str) -> tuple[PathSegment, ...]:
    """Parse a route path pattern into segments.

    Examples::

        "/users"        -> (PathSegment("users"),)
        "/users/:id"    -> (PathSegment("users"), PathSegment(":id", DYNAMIC, "id"))
        "/docs/:lang?"  -> (..., PathSegment(":lang?", DYNAMIC, "lang", optional=True))
        "/en?/about"   -> (PathSegment("en", optional=True), PathSegment("about"))
        "/files/*"      -> (PathSegment("files"), PathSegment("*", SPLAT, "*"))

    Raises ``InvalidPatternError`` for a splat that is not the last
    segment, a ``*`` glued to other text, a bad parameter name, or a
    parameter name used twice.
    """
    parts = [p for p in pattern.strip("/").split("/") if p]
    segments: list[PathSegment] = []
    seen: set[str] = set()

    for i, part in enumerate(parts):
        if part == SPLAT_PARAM:
            if i != len(parts) - 1:
                raise InvalidPatternError(pattern, "'*' must be the last segment")
            segments.append(PathSegment(part, SegmentKind.SPLAT, SPLAT_PARAM))
            continue

        if "*" in part:
            raise InvalidPatternError(
                pattern, f"'*' must be a whole segment, not part of {part!r}"
            )

        if part.startswith(":"):
            optional = part.endswith("?")
            name = part[1:-1] if optional else part[1:]
            if not _PARAM_NAME_RE.match(name):
                raise InvalidPatternError(pattern, f"invalid parameter name in {part!r}")
            if name in seen:
                raise InvalidPatternError(pattern, f"parameter {name!r} is used twice")
            seen.add(name)
            segments.append(
                PathSegment(part, SegmentKind.DYNAMIC, param_name=name, optional=optional)
            )
            continue

        if part.endswith("?"):
            text = part[:-1]
            if not text or "?" in text:
                raise InvalidPatternError(pattern, f"invalid optional segment {part!r}")
            segments.append(PathSegment(text, optional=True))
            continue

        segments.append(PathSegment(part))

    return tuple(segments)


def score_segments(segments: tuple[PathSegment, ...]) -> int:
    """Specificity score: higher wins among sibling routes."""
    score = 0
    for seg in segments:
        if seg.kind is SegmentKind.STATIC:
            score += OPTIONAL_WEIGHT if seg.optional else STATIC_WEIGHT
        elif seg.kind is SegmentKind.SPLAT:
            score += SPLAT_WEIGHT
        elif seg.optional:
            score += OPTIONAL_WEIGHT
        else:
            score += DYNAMIC_WEIGHT
    if segments and segments[-1].kind is SegmentKind.SPLAT:
        score += SPLAT_PENALTY
    return score


@dataclass(frozen=True, slots=True)
class PatternMatch:
    """Result of matching a compiled pattern against the start of a path.

    ``consumed`` and ``remaining`` are both either empty or start with
    ``/``; ``consumed + remaining`` is the path that was matched against.
    """

    params: dict[str, str]
    consumed: str
    remaining: str


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """A route path pattern compiled into a regex plus ranking metadata."""

    pattern: str
    segments: tuple[PathSegment, ...]
    regex: re.Pattern[str]
    param_names: tuple[str, ...]
    score: int
    case_sensitive: bool

    @property
    def is_empty(self) -> bool:
        """True for ``""`` and ``"/"``: patterns that consume nothing."""
        return not self.segments

    def match(self, path: str) -> PatternMatch | None:
        """Match this pattern against the start of *path*.

        *path* is the unconsumed remainder in matcher form: ``""`` or a
        string starting with ``/`` and without a trailing slash.  The
        match always ends on a segment boundary.
        """
        m = self.regex.match(path)
        if m is None:
            return None

        params: dict[str, str] = {}
        for i, seg in enumerate(self.segments):
            if seg.kind is SegmentKind.STATIC:
                continue
            value = m.group(f"p{i}")
            if value is None:
                if seg.kind is SegmentKind.SPLAT:
                    params[SPLAT_PARAM] = ""
                continue
            params[seg.param_name or SPLAT_PARAM] = unquote(value)

        return PatternMatch(params=params, consumed=m.group(0), remaining=path[m.end():])


def _build_regex(segments: tuple[PathSegment, ...], case_sensitive: bool) -> re.Pattern[str]:
    parts: list[str] = []
    for i, seg in enumerate(segments):
        if seg.kind is SegmentKind.STATIC:
            literal = "/" + re.escape(seg.value)
            parts.append(f"(?:{literal})?" if seg.optional else literal)
        elif seg.kind is SegmentKind.SPLAT:
            parts.append(f"(?:/(?P<p{i}>.*))?")
        elif seg.optional:
            parts.append(f"(?:/(?P<p{i}>[^/]+))?")
        else:
            parts.append(f"/(?P<p{i}>[^/]+)")
    # Only stop on a segment boundary: "/users" must not match "/usersx"
    source = "".join(parts) + "(?=/|$)"
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(source, flags)


@functools.lru_cache(maxsize=1024)
def _compile(pattern: str, case_sensitive: bool) -> CompiledPattern:
    segments = parse_pattern(pattern)
    return CompiledPattern(
        pattern=pattern,
        segments=segments,
        regex=_build_regex(segments, case_sensitive),
        param_names=tuple(s.param_name for s in segments if s.param_name is not None),
        score=score_segments(segments),
        case_sensitive=case_sensitive,
    )


def compile_pattern(pattern: str, *, case_sensitive: bool = False) -> CompiledPattern:
    """Compile *pattern*, returning the cached object on repeat calls."""
    return _compile(pattern, bool(case_sensitive))


def to_match_path(pathname: str) -> str:
    """Convert a pathname into the form ``CompiledPattern.match`` expects."""
    normalized = normalize_pathname(pathname)
    return "" if normalized == "/" else normalized


def match_path(
    pattern: str,
    pathname: str,
    *,
    case_sensitive: bool = False,
    end: bool = True,
) -> PatternMatch | None:
    """Match a single pattern against a pathname.

    With ``end=True`` (the default) the whole pathname must be consumed;
    with ``end=False`` a prefix match is enough.
    """
    result = compile_pattern(pattern, case_sensitive=case_sensitive).match(
        to_match_path(pathname)
    )
    if result is None or (end and result.remaining):
        return None
    return result


def generate_path(pattern: str, params: Mapping[str, object] | None = None) -> str:
    """Build a concrete pathname from *pattern* and *params*.

    Dynamic values are percent-encoded; absent optional parameters are
    dropped with their segment; optional static segments are kept; the
    splat value is inserted verbatim.

    Usage::

        generate_path("/users/:id/files/*", {"id": 42, "*": "a/b.txt"})
        # "/users/42/files/a/b.txt"
    """
    params = params or {}
    out: list[str] = []
    for seg in parse_pattern(pattern):
        if seg.kind is SegmentKind.STATIC:
            out.append(seg.value)
        elif seg.kind is SegmentKind.SPLAT:
            value = params.get(SPLAT_PARAM)
            if value:
                out.append(str(value).strip("/"))
        else:
            value = params.get(seg.param_name or "")
            if value is None:
                if seg.optional:
                    continue
                raise MissingParamError(pattern, seg.param_name or "")
            out.append(quote(str(value), safe=""))
    return "/" + "/".join(out)

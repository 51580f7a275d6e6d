"""Tests for path pattern parsing, scoring, matching and generation."""

import pytest

from waypoint.errors import ConfigurationError, InvalidPatternError, MissingParamError
from waypoint.routing.pattern import (
    SPLAT_PARAM,
    compile_pattern,
    generate_path,
    match_path,
    parse_pattern,
    to_match_path,
)
from waypoint.routing.route import PathSegment, SegmentKind


class TestParsePattern:
    def test_static(self) -> None:
        assert parse_pattern("/users") == (PathSegment("users"),)

    def test_leading_and_trailing_slashes_ignored(self) -> None:
        assert parse_pattern("users/") == parse_pattern("/users") == parse_pattern("users")

    def test_dynamic(self) -> None:
        segments = parse_pattern("/users/:id")
        assert segments[1] == PathSegment(":id", SegmentKind.DYNAMIC, "id")

    def test_optional(self) -> None:
        segments = parse_pattern("/docs/:lang?")
        assert segments[1].optional is True
        assert segments[1].param_name == "lang"

    def test_optional_static(self) -> None:
        segments = parse_pattern("/en?/about")
        assert segments[0] == PathSegment("en", optional=True)
        assert segments[0].kind is SegmentKind.STATIC
        assert segments[1] == PathSegment("about")

    def test_splat(self) -> None:
        segments = parse_pattern("/files/*")
        assert segments[1] == PathSegment("*", SegmentKind.SPLAT, SPLAT_PARAM)

    def test_empty_pattern(self) -> None:
        assert parse_pattern("") == ()
        assert parse_pattern("/") == ()

    @pytest.mark.parametrize(
        "pattern",
        [
            "/files/*/more",
            "/files/a*",
            "/users/:",
            "/users/:bad-name",
            "/a/:id/b/:id",
            "/a/?",
            "/a/b??",
        ],
    )
    def test_invalid(self, pattern: str) -> None:
        with pytest.raises(InvalidPatternError) as exc_info:
            parse_pattern(pattern)
        assert exc_info.value.pattern == pattern

    def test_invalid_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_pattern("/*/x")


class TestScore:
    def test_static_beats_dynamic_beats_optional_beats_splat(self) -> None:
        static = compile_pattern("users/new").score
        dynamic = compile_pattern("users/:id").score
        optional = compile_pattern("users/:id?").score
        splat = compile_pattern("users/*").score
        assert static > dynamic > optional > splat

    def test_optional_static_scores_like_optional(self) -> None:
        assert compile_pattern("en?/about").score == compile_pattern(":lang?/about").score
        assert compile_pattern("en/about").score > compile_pattern("en?/about").score

    def test_longer_static_wins(self) -> None:
        assert compile_pattern("a/b").score > compile_pattern("a").score


class TestMatchPath:
    def test_exact(self) -> None:
        result = match_path("/users/:id", "/users/42")
        assert result is not None
        assert result.params == {"id": "42"}
        assert result.consumed == "/users/42"
        assert result.remaining == ""

    def test_values_are_percent_decoded(self) -> None:
        result = match_path("/users/:id", "/users/john%20doe")
        assert result is not None
        assert result.params == {"id": "john doe"}

    def test_segment_boundary(self) -> None:
        assert match_path("/users", "/usersx") is None

    def test_prefix_match(self) -> None:
        result = match_path("/users", "/users/42", end=False)
        assert result is not None
        assert result.consumed == "/users"
        assert result.remaining == "/42"

    def test_end_requires_full_path(self) -> None:
        assert match_path("/users", "/users/42") is None

    def test_optional_absent_and_present(self) -> None:
        absent = match_path("/docs/:lang?", "/docs")
        present = match_path("/docs/:lang?", "/docs/en")
        assert absent is not None and absent.params == {}
        assert present is not None and present.params == {"lang": "en"}

    def test_optional_static_absent_and_present(self) -> None:
        absent = match_path("/en?/about", "/about")
        present = match_path("/en?/about", "/en/about")
        assert absent is not None and absent.consumed == "/about"
        assert present is not None and present.consumed == "/en/about"
        assert absent.params == present.params == {}
        assert match_path("/en?/about", "/fr/about") is None
        assert match_path("/en?/about", "/english/about") is None

    def test_splat_captures_rest(self) -> None:
        result = match_path("/files/*", "/files/a/b.txt")
        assert result is not None
        assert result.params == {"*": "a/b.txt"}

    def test_absent_splat_is_empty_string(self) -> None:
        result = match_path("/files/*", "/files")
        assert result is not None
        assert result.params == {"*": ""}

    def test_case_insensitive_by_default(self) -> None:
        assert match_path("/users", "/USERS") is not None

    def test_case_sensitive(self) -> None:
        assert match_path("/users", "/USERS", case_sensitive=True) is None

    def test_trailing_slash_ignored(self) -> None:
        assert match_path("/users", "/users/") is not None

    def test_root(self) -> None:
        result = match_path("/", "/")
        assert result is not None
        assert result.params == {}


class TestCompile:
    def test_cached(self) -> None:
        assert compile_pattern("/a/:b") is compile_pattern("/a/:b")

    def test_case_sensitivity_cached_separately(self) -> None:
        assert compile_pattern("/a") is not compile_pattern("/a", case_sensitive=True)

    def test_param_names_in_order(self) -> None:
        assert compile_pattern("/:org/:repo/*").param_names == ("org", "repo", "*")

    def test_to_match_path(self) -> None:
        assert to_match_path("/") == ""
        assert to_match_path("users//42/") == "/users/42"


class TestGeneratePath:
    def test_basic(self) -> None:
        assert generate_path("/users/:id/files/*", {"id": 42, "*": "a/b.txt"}) == (
            "/users/42/files/a/b.txt"
        )

    def test_values_are_quoted(self) -> None:
        assert generate_path("/users/:id", {"id": "a b/c"}) == "/users/a%20b%2Fc"

    def test_optional_dropped(self) -> None:
        assert generate_path("/docs/:lang?/intro") == "/docs/intro"

    def test_optional_static_kept(self) -> None:
        assert generate_path("/en?/about") == "/en/about"

    def test_root(self) -> None:
        assert generate_path("/") == "/"

    def test_missing_param(self) -> None:
        with pytest.raises(MissingParamError) as exc_info:
            generate_path("/users/:id", {})
        assert exc_info.value.name == "id"
        assert isinstance(exc_info.value, KeyError)
        assert "'id'" in str(exc_info.value)

"""Tests for the exception hierarchy and the Redirect marker."""

import pytest

from waypoint.errors import (
    ConfigurationError,
    DeferredNotSettled,
    InvalidPatternError,
    NotFound,
    RedirectLoopError,
    RouteError,
    UnhandledRouteError,
    WaypointError,
)
from waypoint.responses import Redirect, redirect


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type",
        [ConfigurationError, RedirectLoopError, UnhandledRouteError, DeferredNotSettled],
    )
    def test_faults_are_waypoint_errors(self, exc_type: type) -> None:
        assert issubclass(exc_type, WaypointError)

    def test_invalid_pattern_is_configuration_error(self) -> None:
        assert issubclass(InvalidPatternError, ConfigurationError)

    def test_route_error_is_not_a_fault(self) -> None:
        assert not issubclass(RouteError, WaypointError)


class TestRouteError:
    def test_value_equality(self) -> None:
        assert RouteError(400, "bad") == RouteError(400, "bad")
        assert RouteError(400, "bad") != RouteError(401, "bad")

    def test_defaults(self) -> None:
        error = RouteError()
        assert error.status == 500
        assert str(error) == "500"

    def test_str(self) -> None:
        assert str(RouteError(403, "nope")) == "403: nope"

    def test_raisable(self) -> None:
        with pytest.raises(RouteError) as exc_info:
            raise RouteError(418, "teapot", data={"brew": False})
        assert exc_info.value.data == {"brew": False}

    def test_not_found(self) -> None:
        error = NotFound("missing page")
        assert isinstance(error, RouteError)
        assert error.status == 404
        assert error.detail == "missing page"
        assert NotFound() == NotFound()


class TestFaultMessages:
    def test_redirect_loop(self) -> None:
        error = RedirectLoopError("/a", 21)
        assert error.hops == 21
        assert "/a" in str(error)

    def test_unhandled(self) -> None:
        cause = RouteError(500, "boom")
        error = UnhandledRouteError("leaf", cause)
        assert error.route_id == "leaf"
        assert error.error is cause


class TestRedirect:
    def test_helper(self) -> None:
        assert redirect("/login") == Redirect("/login", 302)

    def test_status_must_be_3xx(self) -> None:
        with pytest.raises(ValueError, match="3xx"):
            Redirect("/x", status=200)

    def test_raisable(self) -> None:
        with pytest.raises(Redirect) as exc_info:
            raise redirect("/next", status=303)
        assert exc_info.value.location == "/next"
        assert exc_info.value.status == 303

"""Tests for guard conditions."""

from __future__ import annotations

import pytest

from detour.rewrites.conditions import (
    NOT_MATCHED,
    ConditionType,
    HasCondition,
    match_has,
    to_python_pattern,
)
from detour.rewrites.request import RequestView, create_request_view, parse_cookies


@pytest.fixture
def request_view():
    return RequestView(
        path="/docs",
        headers={"X-Beta": "yes", "Host": "Foo.Example.com:8080"},
        cookies={"Session": "abc"},
        query={"q": "hello world", "tag": ["a", "b"]},
        initial_query_values=("hello world", "a", "b"),
    )


class TestHasCondition:
    """Tests for HasCondition construction."""

    def test_type_from_string(self) -> None:
        """Test the type may be given as a string."""
        condition = HasCondition(type="cookie", key="session")
        assert condition.type is ConditionType.COOKIE

    def test_key_required(self) -> None:
        """Test non-host conditions require a key."""
        with pytest.raises(ValueError, match="requires 'key'"):
            HasCondition(type=ConditionType.HEADER)

    def test_host_without_key(self) -> None:
        """Test host conditions need no key."""
        condition = HasCondition(type=ConditionType.HOST)
        assert condition.param_name == "host"

    def test_unknown_type(self) -> None:
        """Test unknown condition types are rejected."""
        with pytest.raises(ValueError):
            HasCondition(type="method", key="x")

    def test_invalid_pattern(self) -> None:
        """Test an invalid regex is reported as ValueError."""
        with pytest.raises(ValueError, match="Invalid header condition pattern"):
            HasCondition(type=ConditionType.HEADER, key="x", value="(")

    def test_true_value_rejected(self) -> None:
        """Test value=True is not a valid condition."""
        with pytest.raises(ValueError):
            HasCondition(type=ConditionType.HEADER, key="x", value=True)

    def test_param_name_is_sanitized(self) -> None:
        """Test existence matches bind the sanitized key."""
        assert HasCondition(type=ConditionType.HEADER, key="x-user-id").param_name == "xuserid"

    def test_param_name_case(self) -> None:
        """Test header keys are lower-cased while cookie and query keys keep their case."""
        assert HasCondition(type=ConditionType.HEADER, key="X-User-Id").param_name == "xuserid"
        assert HasCondition(type=ConditionType.COOKIE, key="Session").param_name == "Session"
        assert HasCondition(type=ConditionType.QUERY, key="Page").param_name == "Page"

    def test_dict_conversion(self) -> None:
        """Test to_dict and from_dict agree."""
        condition = HasCondition(type=ConditionType.QUERY, key="page", value=False)
        assert condition.to_dict() == {"type": "query", "key": "page", "value": False}
        assert HasCondition.from_dict(condition.to_dict()) == condition


class TestToPythonPattern:
    """Tests for to_python_pattern."""

    def test_named_groups(self) -> None:
        """Test JavaScript named groups and backreferences are translated."""
        assert to_python_pattern("(?<a>x)\\k<a>") == "(?P<a>x)(?P=a)"

    def test_lookbehind_untouched(self) -> None:
        """Test lookbehinds keep their syntax."""
        assert to_python_pattern("(?<=a)b") == "(?<=a)b"
        assert to_python_pattern("(?<!a)b") == "(?<!a)b"

    def test_python_syntax_untouched(self) -> None:
        """Test patterns already in Python syntax are unchanged."""
        assert to_python_pattern("(?P<a>x)") == "(?P<a>x)"


class TestMatchHas:
    """Tests for match_has."""

    def test_no_conditions(self, request_view) -> None:
        """Test an empty condition list matches with no params."""
        result = match_has(request_view, [])
        assert result
        assert result.params == {}

    def test_header_exists(self, request_view) -> None:
        """Test header names are case-insensitive and bind their value."""
        result = match_has(request_view, [HasCondition(type=ConditionType.HEADER, key="X-BETA")])
        assert result
        assert result.params == {"xbeta": "yes"}

    def test_header_param_name_is_lower_case(self) -> None:
        """Test a header existence check binds the lower-cased key."""
        request = RequestView(headers={"X-Tenant": "acme"})
        result = match_has(request, [HasCondition(type=ConditionType.HEADER, key="X-Tenant")])
        assert result.params == {"xtenant": "acme"}

    def test_header_missing(self, request_view) -> None:
        """Test a missing header fails an existence check."""
        result = match_has(request_view, [HasCondition(type=ConditionType.HEADER, key="x-other")])
        assert result is NOT_MATCHED
        assert not result

    def test_header_named_group(self, request_view) -> None:
        """Test named groups become params."""
        condition = HasCondition(type=ConditionType.HEADER, key="x-beta", value="(?<flag>y.*)")
        assert match_has(request_view, [condition]).params == {"flag": "yes"}

    def test_value_must_match_fully(self, request_view) -> None:
        """Test a pattern matching only part of the value fails."""
        condition = HasCondition(type=ConditionType.HEADER, key="x-beta", value="ye")
        assert not match_has(request_view, [condition])

    def test_value_is_case_sensitive(self, request_view) -> None:
        """Test value patterns are case-sensitive."""
        condition = HasCondition(type=ConditionType.HEADER, key="x-beta", value="YES")
        assert not match_has(request_view, [condition])

    def test_cookie_key_is_case_sensitive(self, request_view) -> None:
        """Test cookie names are looked up exactly."""
        assert not match_has(request_view, [HasCondition(type=ConditionType.COOKIE, key="session")])
        result = match_has(request_view, [HasCondition(type=ConditionType.COOKIE, key="Session")])
        assert result.params == {"Session": "abc"}

    def test_query_value_keeps_original_encoding(self, request_view) -> None:
        """Test query values sent by the client are re-encoded."""
        result = match_has(request_view, [HasCondition(type=ConditionType.QUERY, key="q")])
        assert result.params == {"q": "hello%20world"}

    def test_query_value_added_upstream(self) -> None:
        """Test query values not sent by the client are used as-is."""
        request = RequestView(query={"q": "hello world"})
        result = match_has(request, [HasCondition(type=ConditionType.QUERY, key="q")])
        assert result.params == {"q": "hello world"}

    def test_query_multiple_values_uses_first(self, request_view) -> None:
        """Test a repeated query key is matched on its first value."""
        result = match_has(request_view, [HasCondition(type=ConditionType.QUERY, key="tag")])
        assert result.params == {"tag": "a"}

    def test_explicit_query(self, request_view) -> None:
        """Test an explicit query mapping replaces the request query."""
        condition = HasCondition(type=ConditionType.QUERY, key="page", value="(?<page>\\d+)")
        assert not match_has(request_view, [condition])
        assert match_has(request_view, [condition], {"page": "3"}).params == {"page": "3"}

    def test_host_named_group(self) -> None:
        """Test the host has its port stripped before matching."""
        request = RequestView(headers={"host": "foo.example.com:8080"})
        condition = HasCondition(type=ConditionType.HOST, value=r"(?<sub>.*)\.example\.com")
        result = match_has(request, [condition])
        assert result
        assert result.params == {"sub": "foo"}

    def test_host_without_groups(self, request_view) -> None:
        """Test a host pattern without groups binds the whole host."""
        condition = HasCondition(type=ConditionType.HOST, value=r"foo\.example\.com")
        assert match_has(request_view, [condition]).params == {"host": "foo.example.com"}

    def test_host_exists(self, request_view) -> None:
        """Test a host existence check binds the lower-cased host."""
        result = match_has(request_view, [HasCondition(type=ConditionType.HOST)])
        assert result.params == {"host": "foo.example.com"}

    def test_host_missing(self) -> None:
        """Test a request without a host fails host conditions."""
        assert not match_has(RequestView(), [HasCondition(type=ConditionType.HOST)])

    def test_value_false_requires_absence(self, request_view) -> None:
        """Test value=False passes only when the facet is absent."""
        absent = HasCondition(type=ConditionType.COOKIE, key="beta", value=False)
        present = HasCondition(type=ConditionType.COOKIE, key="Session", value=False)
        result = match_has(request_view, [absent])
        assert result
        assert result.params == {}
        assert not match_has(request_view, [present])

    def test_all_conditions_must_match(self, request_view) -> None:
        """Test a single failing condition fails the whole list."""
        conditions = [
            HasCondition(type=ConditionType.HEADER, key="x-beta"),
            HasCondition(type=ConditionType.COOKIE, key="missing"),
        ]
        result = match_has(request_view, conditions)
        assert not result
        assert result.params == {}

    def test_later_conditions_overwrite(self, request_view) -> None:
        """Test a later condition's param replaces an earlier one."""
        conditions = [
            HasCondition(type=ConditionType.HEADER, key="x-beta", value="(?<id>.*)"),
            HasCondition(type=ConditionType.COOKIE, key="Session", value="(?<id>.*)"),
        ]
        assert match_has(request_view, conditions).params == {"id": "abc"}

    def test_optional_group_not_bound(self, request_view) -> None:
        """Test named groups that did not participate are not bound."""
        condition = HasCondition(
            type=ConditionType.HEADER, key="x-beta", value="(?<first>y)(?<second>z)?es"
        )
        assert match_has(request_view, [condition]).params == {"first": "y"}


class TestRequestView:
    """Tests for RequestView and create_request_view."""

    def test_normalizes_headers_and_method(self) -> None:
        """Test header names are lower-cased and the method upper-cased."""
        request = RequestView(method="post", headers={"X-Test": "v", "Host": "a.com"})
        assert request.method == "POST"
        assert request.headers == {"x-test": "v", "host": "a.com"}
        assert request.header("X-TEST") == "v"
        assert request.host == "a.com"

    def test_create_from_relative_url(self) -> None:
        """Test path, query and cookies are taken from the URL and headers."""
        request = create_request_view(
            "/a?x=1&x=2", headers={"Cookie": "a=1; b=2", "X-Test": "v"}
        )
        assert request.path == "/a"
        assert request.query == {"x": ["1", "2"]}
        assert request.cookies == {"a": "1", "b": "2"}
        assert request.header("x-test") == "v"
        assert request.initial_query_values == ("1", "2")
        assert request.host is None

    def test_create_from_absolute_url(self) -> None:
        """Test the host comes from an absolute URL."""
        request = create_request_view("https://example.com:8080/docs")
        assert request.path == "/docs"
        assert request.host == "example.com:8080"

    def test_host_header_wins(self) -> None:
        """Test an explicit Host header takes precedence over the URL."""
        request = create_request_view("https://example.com/", headers={"Host": "other.com"})
        assert request.host == "other.com"

    def test_explicit_cookies(self) -> None:
        """Test explicit cookies replace the Cookie header."""
        request = create_request_view("/", headers={"cookie": "a=1"}, cookies={"b": "2"})
        assert request.cookies == {"b": "2"}

    def test_parse_cookies(self) -> None:
        """Test cookie header parsing."""
        assert parse_cookies("a=1; b = 2; junk; c=x=y") == {"a": "1", "b": "2", "c": "x=y"}
        assert parse_cookies(None) == {}
        assert parse_cookies("") == {}

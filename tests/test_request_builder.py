"""Tests for RequestBuilder configuration and finalize().

Tests cover:
- Fluent setters and their defaults
- URL query parameter handling
- Standard header merging
- Body precedence (raw body, form, JSON) and the form-to-JSON fallback
- Invalid URL and encoding failures
"""

import json

import pytest

from qwikhttp.config import DEFAULT_TIMEOUT, ProcessConfig
from qwikhttp.errors import EncodingError, InvalidUrlError
from qwikhttp.models import (
    CachePolicy,
    HttpMethod,
    LoggingLevel,
    ParameterType,
    ResponseThread,
)
from qwikhttp.request_builder import RequestBuilder
from tests.conftest import BASE_URL, Item, Tag


class TestDefaultsAndSetters:
    """Builders start from config defaults and setters chain."""

    def test_defaults_come_from_config(self) -> None:
        config = ProcessConfig(
            default_timeout=12.0,
            default_parameter_type=ParameterType.FORM_ENCODED,
            default_response_thread=ResponseThread.BACKGROUND,
            default_logging_level=LoggingLevel.DEBUG,
            default_loading_title="Loading",
            default_cache_policy=CachePolicy.USE_PROTOCOL,
        )
        builder = RequestBuilder(f"{BASE_URL}/items", config=config)

        assert builder.method == HttpMethod.GET
        assert builder.timeout == 12.0
        assert builder.parameter_type == ParameterType.FORM_ENCODED
        assert builder.response_thread == ResponseThread.BACKGROUND
        assert builder.logging_level == LoggingLevel.DEBUG
        assert builder.loading_title == "Loading"
        assert builder.cache_policy == CachePolicy.USE_PROTOCOL
        assert builder.was_intercepted is False

    def test_method_accepts_lowercase_name(self, make_builder) -> None:
        assert make_builder(method="patch").method == HttpMethod.PATCH

    def test_setters_return_same_instance(self, make_builder) -> None:
        builder = make_builder()
        result = (
            builder.add_header("X-Trace", "1")
            .add_param("name", "widget")
            .set_timeout(5)
            .set_cache_policy(CachePolicy.USE_PROTOCOL)
            .set_loading_title("Saving")
            .set_response_thread(ResponseThread.MAIN)
            .set_logging_level(LoggingLevel.NONE)
            .set_avoid_request_interceptor()
            .set_avoid_response_interceptor()
            .set_avoid_standard_headers()
        )

        assert result is builder
        assert builder.headers == {"X-Trace": "1"}
        assert builder.params == {"name": "widget"}
        assert builder.timeout == 5
        assert builder.avoid_request_interceptor is True
        assert builder.avoid_response_interceptor is True
        assert builder.avoid_standard_headers is True

    def test_none_values_are_ignored(self, make_builder) -> None:
        builder = make_builder().add_param("a", None).add_header("B", None).add_url_param("c", None)

        assert builder.params == {}
        assert builder.headers == {}
        assert builder.url == f"{BASE_URL}/items"

    def test_header_last_write_wins(self, make_builder) -> None:
        builder = make_builder().add_header("X-A", "1").add_headers({"X-A": "2", "X-B": "3"})

        assert builder.headers == {"X-A": "2", "X-B": "3"}

    @pytest.mark.parametrize("value", [0, -3.5])
    def test_non_positive_timeout_resets_to_default(self, make_builder, value) -> None:
        builder = make_builder().set_timeout(10).set_timeout(value)

        assert builder.timeout == DEFAULT_TIMEOUT

    def test_avoid_flags_can_be_cleared(self, make_builder) -> None:
        builder = make_builder().set_avoid_response_interceptor().set_avoid_response_interceptor(False)

        assert builder.avoid_response_interceptor is False


class TestUrlParams:
    """Query parameters are URL-encoded and appended to the URL."""

    def test_first_param_starts_query(self, make_builder) -> None:
        builder = make_builder().add_url_param("q", "red shoes")

        assert builder.url == f"{BASE_URL}/items?q=red+shoes"

    def test_later_params_are_joined(self, make_builder) -> None:
        builder = make_builder().add_url_param("a", "1").add_url_params({"b": "2", "c": "x&y"})

        assert builder.url == f"{BASE_URL}/items?a=1&b=2&c=x%26y"

    def test_remove_url_param(self, make_builder) -> None:
        builder = make_builder().add_url_params([("a", "1"), ("b", "2"), ("a", "3")])

        builder.remove_url_param("a")

        assert builder.url == f"{BASE_URL}/items?b=2"

    def test_remove_keeps_encoding_of_other_params(self, make_builder) -> None:
        builder = make_builder("/items?q=red%20shoes&page=2&tag=a%2Bb")

        builder.remove_url_param("page")

        assert builder.url == f"{BASE_URL}/items?q=red%20shoes&tag=a%2Bb"

    def test_remove_encoded_key(self, make_builder) -> None:
        builder = make_builder("/items?sort+by=name&a=1")

        builder.remove_url_param("sort by")

        assert builder.url == f"{BASE_URL}/items?a=1"

    def test_remove_last_param_drops_query(self, make_builder) -> None:
        builder = make_builder().add_url_param("a", "1")

        builder.remove_url_param("a")

        assert builder.url == f"{BASE_URL}/items"

    def test_remove_missing_param_leaves_url(self, make_builder) -> None:
        builder = make_builder().add_url_param("a", "1")

        builder.remove_url_param("zzz")

        assert builder.url == f"{BASE_URL}/items?a=1"


class TestFinalizeUrlAndHeaders:
    """URL validation and header merging during finalize()."""

    @pytest.mark.parametrize("url", ["not a url", "/relative/path", "http://"])
    def test_invalid_url(self, config, url) -> None:
        builder = RequestBuilder(url, config=config)

        with pytest.raises(InvalidUrlError):
            builder.finalize()

    def test_descriptor_carries_configuration(self, make_builder) -> None:
        builder = make_builder(method=HttpMethod.DELETE).set_timeout(3).set_cache_policy(
            CachePolicy.USE_PROTOCOL
        )

        descriptor = builder.finalize()

        assert descriptor.url == f"{BASE_URL}/items"
        assert descriptor.method == HttpMethod.DELETE
        assert descriptor.timeout == 3
        assert descriptor.cache_policy == CachePolicy.USE_PROTOCOL
        assert descriptor.body is None

    def test_standard_headers_merged(self, config, make_builder) -> None:
        config.standard_headers = {"Accept": "application/json", "X-Client": "qwik"}

        descriptor = make_builder().finalize()

        assert descriptor.headers["Accept"] == "application/json"
        assert descriptor.headers["X-Client"] == "qwik"

    def test_explicit_header_beats_standard_header(self, config, make_builder) -> None:
        config.standard_headers = {"Authorization": "Bearer default"}

        descriptor = make_builder().add_header("authorization", "Bearer mine").finalize()

        assert descriptor.headers == {"authorization": "Bearer mine"}

    def test_avoid_standard_headers(self, config, make_builder) -> None:
        config.standard_headers = {"X-Client": "qwik"}

        descriptor = make_builder().set_avoid_standard_headers().finalize()

        assert "X-Client" not in descriptor.headers

    def test_standard_headers_are_not_copied_onto_builder(self, config, make_builder) -> None:
        config.standard_headers = {"Authorization": "Bearer old"}
        builder = make_builder()
        builder.finalize()

        config.standard_headers = {"Authorization": "Bearer new"}

        assert builder.finalize().headers["Authorization"] == "Bearer new"


class TestFinalizeBody:
    """Body resolution precedence and Content-Type handling."""

    def test_json_params(self, make_builder) -> None:
        builder = make_builder(method=HttpMethod.POST).add_params({"name": "widget", "count": 2})

        descriptor = builder.finalize()

        assert json.loads(descriptor.body) == {"name": "widget", "count": 2}
        assert descriptor.headers["Content-Type"] == "application/json"

    def test_form_params(self, make_builder) -> None:
        builder = (
            make_builder(method=HttpMethod.POST)
            .set_parameter_type(ParameterType.FORM_ENCODED)
            .add_params({"name": "blue widget", "color": "a&b"})
        )

        descriptor = builder.finalize()

        assert descriptor.body == b"name=blue+widget&color=a%26b"
        assert descriptor.headers["Content-Type"] == "application/x-www-form-urlencoded"

    def test_form_falls_back_to_json_for_non_string_values(self, make_builder) -> None:
        builder = (
            make_builder(method=HttpMethod.POST)
            .set_parameter_type(ParameterType.FORM_ENCODED)
            .add_params({"name": "widget", "count": 3})
        )

        descriptor = builder.finalize()

        assert builder.parameter_type == ParameterType.JSON
        assert descriptor.headers["Content-Type"] == "application/json"
        assert json.loads(descriptor.body) == {"name": "widget", "count": 3}

    def test_raw_body_wins_over_params(self, make_builder) -> None:
        builder = (
            make_builder(method=HttpMethod.PUT)
            .add_param("ignored", "yes")
            .set_body("<xml/>")
            .add_header("Content-Type", "application/xml")
        )

        descriptor = builder.finalize()

        assert descriptor.body == b"<xml/>"
        assert descriptor.headers["Content-Type"] == "application/xml"

    def test_raw_body_wins_regardless_of_call_order(self, make_builder) -> None:
        builder = make_builder(method=HttpMethod.PUT).set_body(b"raw").add_param("late", "param")

        assert builder.finalize().body == b"raw"

    def test_no_params_no_body_no_content_type(self, make_builder) -> None:
        descriptor = make_builder().finalize()

        assert descriptor.body is None
        assert "Content-Type" not in descriptor.headers

    def test_resolved_body_recorded_on_builder(self, make_builder) -> None:
        builder = make_builder(method=HttpMethod.POST).add_param("name", "widget")
        assert builder.get_body() is None

        builder.finalize()

        assert json.loads(builder.get_body()) == {"name": "widget"}
        assert builder.headers["Content-Type"] == "application/json"

    def test_content_type_replaced_case_insensitively(self, make_builder) -> None:
        builder = (
            make_builder(method=HttpMethod.POST)
            .add_header("content-type", "text/plain")
            .add_param("name", "widget")
        )

        builder.finalize()

        assert builder.headers == {"Content-Type": "application/json"}

    def test_unserializable_params_raise_encoding_error(self, make_builder) -> None:
        builder = make_builder(method=HttpMethod.POST).add_param("thing", object())

        with pytest.raises(EncodingError):
            builder.finalize()


class TestObjectPayloads:
    """set_object / set_objects serialize domain models."""

    def test_set_object_uses_model_fields(self, make_builder) -> None:
        builder = (
            make_builder(method=HttpMethod.POST)
            .set_parameter_type(ParameterType.FORM_ENCODED)
            .set_object(Item(name="widget", tags=[Tag(label="new")]))
        )

        descriptor = builder.finalize()

        assert builder.parameter_type == ParameterType.JSON
        assert json.loads(descriptor.body) == {
            "id": None,
            "name": "widget",
            "tags": [{"label": "new"}],
        }

    def test_set_objects_sends_json_array(self, make_builder) -> None:
        builder = make_builder(method=HttpMethod.POST).set_objects(
            [Item(id=1, name="a"), Item(id=2, name="b")]
        )

        descriptor = builder.finalize()

        body = json.loads(descriptor.body)
        assert [entry["name"] for entry in body] == ["a", "b"]
        assert descriptor.headers["Content-Type"] == "application/json"

    def test_set_object_none_is_noop(self, make_builder) -> None:
        builder = make_builder().set_object(None)

        assert builder.params == {}

"""Unit tests for PublicIPResolver."""

from typing import Dict
from unittest.mock import MagicMock

import pytest
import requests

from swarm_dns.errors import AddressResolutionError
from swarm_dns.ip import PublicIPResolver

JSON_SOURCE = "https://json.example/ip"
TEXT_SOURCE = "https://text.example/ip"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def json_response(address: str):
    response = MagicMock()
    response.headers = {"Content-Type": "application/json; charset=utf-8"}
    response.json.return_value = {"ip": address}
    return response


def text_response(address: str):
    response = MagicMock()
    response.headers = {"Content-Type": "text/plain"}
    response.text = f"{address}\n"
    return response


def make_session(answers: Dict[str, object]) -> MagicMock:
    """Session whose get() answers per URL; exceptions in answers are raised."""
    session = MagicMock()

    def get(url, timeout=None):
        answer = answers[url]
        if isinstance(answer, Exception):
            raise answer
        return answer

    session.get.side_effect = get
    return session


def make_resolver(session: MagicMock, clock: FakeClock) -> PublicIPResolver:
    return PublicIPResolver(
        (JSON_SOURCE, TEXT_SOURCE), cache_seconds=300, clock=clock, session=session
    )


def test_matching_sources_return_address() -> None:
    session = make_session(
        {JSON_SOURCE: json_response("203.0.113.5"), TEXT_SOURCE: text_response("203.0.113.5")}
    )
    resolver = make_resolver(session, FakeClock())

    assert resolver.current_address() == "203.0.113.5"
    assert resolver.cached_address == "203.0.113.5"
    session.get.assert_any_call(JSON_SOURCE, timeout=5.0)


def test_address_is_cached_within_window() -> None:
    session = make_session(
        {JSON_SOURCE: json_response("203.0.113.5"), TEXT_SOURCE: text_response("203.0.113.5")}
    )
    clock = FakeClock()
    resolver = make_resolver(session, clock)

    resolver.current_address()
    clock.now += 299
    resolver.current_address()

    assert session.get.call_count == 2


def test_address_is_refreshed_after_window() -> None:
    answers = {JSON_SOURCE: json_response("203.0.113.5"), TEXT_SOURCE: text_response("203.0.113.5")}
    session = make_session(answers)
    clock = FakeClock()
    resolver = make_resolver(session, clock)

    resolver.current_address()
    answers[JSON_SOURCE] = json_response("203.0.113.9")
    answers[TEXT_SOURCE] = text_response("203.0.113.9")
    clock.now += 300

    assert resolver.current_address() == "203.0.113.9"
    assert session.get.call_count == 4


def test_disagreeing_sources_without_cache_raise() -> None:
    session = make_session(
        {JSON_SOURCE: json_response("203.0.113.5"), TEXT_SOURCE: text_response("198.51.100.1")}
    )
    resolver = make_resolver(session, FakeClock())

    with pytest.raises(AddressResolutionError, match="don't match"):
        resolver.current_address()


def test_network_error_without_cache_raises() -> None:
    session = make_session(
        {
            JSON_SOURCE: requests.exceptions.ConnectionError("unreachable"),
            TEXT_SOURCE: text_response("203.0.113.5"),
        }
    )
    resolver = make_resolver(session, FakeClock())

    with pytest.raises(AddressResolutionError, match="unreachable"):
        resolver.current_address()


def test_failure_falls_back_to_cached_address(caplog) -> None:
    answers = {JSON_SOURCE: json_response("203.0.113.5"), TEXT_SOURCE: text_response("203.0.113.5")}
    session = make_session(answers)
    clock = FakeClock()
    resolver = make_resolver(session, clock)
    resolver.current_address()

    answers[TEXT_SOURCE] = requests.exceptions.Timeout("timed out")
    clock.now += 600

    assert resolver.current_address() == "203.0.113.5"
    assert "Using cached IP address" in caplog.text


def test_http_error_status_is_a_failure() -> None:
    bad = text_response("")
    bad.raise_for_status.side_effect = requests.exceptions.HTTPError("503 Server Error")
    session = make_session({JSON_SOURCE: json_response("203.0.113.5"), TEXT_SOURCE: bad})
    resolver = make_resolver(session, FakeClock())

    with pytest.raises(AddressResolutionError, match="503"):
        resolver.current_address()


def test_malformed_json_is_a_failure() -> None:
    broken = json_response("x")
    broken.json.return_value = {"address": "203.0.113.5"}
    session = make_session({JSON_SOURCE: broken, TEXT_SOURCE: text_response("203.0.113.5")})
    resolver = make_resolver(session, FakeClock())

    with pytest.raises(AddressResolutionError, match="Malformed response"):
        resolver.current_address()


def test_empty_response_is_a_failure() -> None:
    session = make_session({JSON_SOURCE: json_response("  "), TEXT_SOURCE: text_response("")})
    resolver = make_resolver(session, FakeClock())

    with pytest.raises(AddressResolutionError, match="Empty response"):
        resolver.current_address()


def test_at_least_one_source_required() -> None:
    with pytest.raises(ValueError):
        PublicIPResolver(())

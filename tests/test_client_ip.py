"""Tests for client address resolution and rate limit key derivation."""

import pytest
from starlette.datastructures import Headers

from app.core.client_ip import (
    UNKNOWN_CLIENT,
    default_key_generator,
    get_client_ip,
    namespaced_key_generator,
)


class TestGetClientIP:
    """Header precedence when resolving the originating address."""

    def test_forwarded_for_first_segment_wins(self) -> None:
        headers = {
            "x-forwarded-for": " 203.0.113.7 , 10.0.0.1",
            "x-real-ip": "198.51.100.1",
            "cf-connecting-ip": "192.0.2.9",
        }
        assert get_client_ip(headers) == "203.0.113.7"

    def test_real_ip_used_without_forwarded_for(self) -> None:
        headers = {"x-real-ip": "198.51.100.1", "cf-connecting-ip": "192.0.2.9"}
        assert get_client_ip(headers) == "198.51.100.1"

    def test_connecting_ip_is_last_resort(self) -> None:
        assert get_client_ip({"cf-connecting-ip": "192.0.2.9"}) == "192.0.2.9"

    def test_connecting_ip_can_be_ignored(self) -> None:
        headers = {"cf-connecting-ip": "192.0.2.9"}
        assert get_client_ip(headers, include_connecting_ip=False) == UNKNOWN_CLIENT

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"x-forwarded-for": ""},
            {"x-forwarded-for": " , 10.0.0.1", "x-real-ip": "  "},
        ],
    )
    def test_unidentifiable_clients_share_unknown_bucket(self, headers: dict) -> None:
        assert get_client_ip(headers) == UNKNOWN_CLIENT

    def test_starlette_headers_are_case_insensitive(self) -> None:
        headers = Headers({"X-Real-IP": "198.51.100.1"})
        assert get_client_ip(headers) == "198.51.100.1"


class TestKeyGenerators:
    def test_default_key_generator(self, make_request) -> None:
        request = make_request(x_real_ip="198.51.100.1")
        assert default_key_generator(request) == "rate_limit:198.51.100.1"

    def test_namespaced_keys_differ_for_same_client(self, make_request) -> None:
        request = make_request(x_forwarded_for="203.0.113.7")
        auth_key = namespaced_key_generator("auth_limit")(request)

        assert auth_key == "auth_limit:203.0.113.7"
        assert auth_key != default_key_generator(request)

    def test_namespaced_key_without_connecting_ip(self, make_request) -> None:
        request = make_request(cf_connecting_ip="192.0.2.9")
        key = namespaced_key_generator("auth_limit", include_connecting_ip=False)(request)
        assert key == "auth_limit:unknown"

"""Unit tests for the registry transport.

The ORAS client is replaced with a MagicMock whose ``remote.do_request``
returns prepared ``requests.Response`` objects; no network is used.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from imgpin.oci.auth import AnonymousKeychain, Credentials, StaticKeychain
from imgpin.oci.errors import AuthenticationError, PlatformNotFoundError, RegistryResponseError
from imgpin.oci.metrics import ResolverMetrics
from imgpin.oci.reference import parse_reference
from imgpin.oci.transport import (
    ACCEPT_HEADER,
    MEDIA_TYPE_OCI_INDEX,
    MEDIA_TYPE_OCI_MANIFEST,
    ORAS_AUTH_BACKEND,
    RegistryTransport,
    Transport,
    strip_port,
)
from imgpin.schemas.image import Platform

MANIFEST_BODY = json.dumps({"schemaVersion": 2, "mediaType": MEDIA_TYPE_OCI_MANIFEST}).encode()
AMD64_DIGEST = "sha256:" + "a" * 64
ARM64_DIGEST = "sha256:" + "b" * 64
INDEX_DIGEST = "sha256:" + "c" * 64


def _response(
    status_code: int, body: bytes = b"", headers: dict[str, str] | None = None, reason: str = ""
) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    response.headers = CaseInsensitiveDict(headers or {})
    response.reason = reason
    return response


def _manifest_response(digest: str | None, body: bytes = MANIFEST_BODY) -> requests.Response:
    headers = {"Content-Type": MEDIA_TYPE_OCI_MANIFEST}
    if digest:
        headers["Docker-Content-Digest"] = digest
    return _response(200, body, headers)


def _index_response() -> requests.Response:
    body = {
        "schemaVersion": 2,
        "mediaType": MEDIA_TYPE_OCI_INDEX,
        "manifests": [
            {
                "mediaType": MEDIA_TYPE_OCI_MANIFEST,
                "digest": AMD64_DIGEST,
                "size": 1234,
                "platform": {"os": "linux", "architecture": "amd64"},
            },
            {
                "mediaType": MEDIA_TYPE_OCI_MANIFEST,
                "digest": ARM64_DIGEST,
                "size": 1235,
                "platform": {"os": "linux", "architecture": "arm64", "variant": "v8"},
            },
        ],
    }
    return _response(
        200,
        json.dumps(body).encode(),
        {"Content-Type": MEDIA_TYPE_OCI_INDEX, "Docker-Content-Digest": INDEX_DIGEST},
    )


@pytest.fixture
def transport() -> RegistryTransport:
    return RegistryTransport(metrics=ResolverMetrics())


@pytest.fixture
def mock_oras_client() -> MagicMock:
    return MagicMock()


def _get(transport: RegistryTransport, text: str, **kwargs: Any) -> Any:
    options: dict[str, Any] = {
        "platform": None,
        "user_agent": "imgpin/test",
        "keychain": AnonymousKeychain(),
        "timeout": None,
    }
    options.update(kwargs)
    return transport.get_descriptor(parse_reference(text), **options)


def _get_with(
    transport: RegistryTransport, oras_client: MagicMock, response: Any, text: str, **kwargs: Any
) -> Any:
    if isinstance(response, Exception):
        oras_client.remote.do_request.side_effect = response
    else:
        oras_client.remote.do_request.return_value = response
    with patch.object(transport, "_create_oras_client", return_value=oras_client):
        return _get(transport, text, **kwargs)


class TestStripPort:
    """Tests for strip_port()."""

    @pytest.mark.parametrize(
        ("registry", "host"),
        [
            ("ghcr.io", "ghcr.io"),
            ("localhost:5000", "localhost"),
            ("[::1]:5000", "[::1]"),
            ("[::1]", "[::1]"),
            ("::1", "::1"),
        ],
    )
    def test_strip_port(self, registry: str, host: str) -> None:
        assert strip_port(registry) == host


class TestBaseUrl:
    """Tests for registry host and scheme selection."""

    @pytest.mark.parametrize(
        ("registry", "url"),
        [
            ("docker.io", "https://registry-1.docker.io"),
            ("ghcr.io", "https://ghcr.io"),
            ("localhost:5000", "http://localhost:5000"),
            ("127.0.0.1:5000", "http://127.0.0.1:5000"),
            ("[::1]:5000", "http://[::1]:5000"),
            ("registry.local", "http://registry.local"),
            ("registry.local:5000", "http://registry.local:5000"),
        ],
    )
    def test_base_url(self, transport: RegistryTransport, registry: str, url: str) -> None:
        assert transport.base_url(registry) == url

    def test_ipv6_loopback_with_port_is_plain_http(self, transport: RegistryTransport) -> None:
        assert transport.is_plain_http("[::1]:5000")
        assert not transport.is_plain_http("[2001:db8::1]:5000")

    def test_insecure_registries(self) -> None:
        transport = RegistryTransport(insecure_registries=("registry.internal:5000",))
        assert transport.base_url("registry.internal:5000") == "http://registry.internal:5000"
        assert transport.base_url("registry.internal") == "https://registry.internal"

    def test_satisfies_protocol(self, transport: RegistryTransport) -> None:
        assert isinstance(transport, Transport)


class TestCreateOrasClient:
    """Tests for ORAS client construction and login."""

    def test_anonymous_does_not_login(self, transport: RegistryTransport) -> None:
        with patch("imgpin.oci.transport.OrasClient") as oras_cls:
            client = transport._create_oras_client("ghcr.io", AnonymousKeychain())

        assert client is oras_cls.return_value
        oras_cls.assert_called_once_with(hostname="ghcr.io", insecure=False, auth_backend=ORAS_AUTH_BACKEND)
        client.login.assert_not_called()

    def test_login_with_keychain_credentials(self, transport: RegistryTransport) -> None:
        keychain = StaticKeychain({"ghcr.io": Credentials("octo", "pat")})

        with patch("imgpin.oci.transport.OrasClient") as oras_cls:
            transport._create_oras_client("ghcr.io", keychain)

        oras_cls.return_value.login.assert_called_once_with(hostname="ghcr.io", username="octo", password="pat")

    def test_docker_hub_uses_api_host(self, transport: RegistryTransport) -> None:
        keychain = StaticKeychain({"docker.io": Credentials("hubuser", "hubpass")})

        with patch("imgpin.oci.transport.OrasClient") as oras_cls:
            transport._create_oras_client("docker.io", keychain)

        assert oras_cls.call_args.kwargs["hostname"] == "registry-1.docker.io"
        assert oras_cls.return_value.login.call_args.kwargs["hostname"] == "registry-1.docker.io"

    def test_plain_http_registry_is_insecure(self, transport: RegistryTransport) -> None:
        with patch("imgpin.oci.transport.OrasClient") as oras_cls:
            transport._create_oras_client("localhost:5000", AnonymousKeychain())
        assert oras_cls.call_args.kwargs["insecure"] is True

    def test_login_failure_raises_authentication_error(self, transport: RegistryTransport) -> None:
        keychain = StaticKeychain({"ghcr.io": Credentials("octo", "wrong")})

        with patch("imgpin.oci.transport.OrasClient") as oras_cls:
            oras_cls.return_value.login.side_effect = ValueError("unauthorized")
            with pytest.raises(AuthenticationError, match="unauthorized") as exc_info:
                transport._create_oras_client("ghcr.io", keychain)

        assert exc_info.value.registry == "ghcr.io"


class TestGetDescriptor:
    """Tests for manifest lookups."""

    def test_request_shape_and_digest_header(
        self, transport: RegistryTransport, mock_oras_client: MagicMock, sample_digest: str
    ) -> None:
        descriptor = _get_with(transport, mock_oras_client, _manifest_response(sample_digest), "nginx:1.25")

        assert descriptor.digest == sample_digest
        assert descriptor.media_type == MEDIA_TYPE_OCI_MANIFEST
        assert descriptor.size == len(MANIFEST_BODY)
        call = mock_oras_client.remote.do_request.call_args
        assert call.args == ("https://registry-1.docker.io/v2/library/nginx/manifests/1.25", "GET")
        assert call.kwargs["headers"] == {"Accept": ACCEPT_HEADER, "User-Agent": "imgpin/test"}

    def test_digest_falls_back_to_body_hash(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        descriptor = _get_with(transport, mock_oras_client, _manifest_response(None), "ghcr.io/acme/app:v1")
        assert descriptor.digest == f"sha256:{hashlib.sha256(MANIFEST_BODY).hexdigest()}"

    def test_media_type_from_body_when_header_is_generic(
        self, transport: RegistryTransport, mock_oras_client: MagicMock, sample_digest: str
    ) -> None:
        response = _response(
            200, MANIFEST_BODY, {"Content-Type": "application/json", "Docker-Content-Digest": sample_digest}
        )
        descriptor = _get_with(transport, mock_oras_client, response, "ghcr.io/acme/app:v1")
        assert descriptor.media_type == MEDIA_TYPE_OCI_MANIFEST

    def test_digest_reference_uses_digest_path(
        self, transport: RegistryTransport, mock_oras_client: MagicMock, sample_digest: str
    ) -> None:
        _get_with(transport, mock_oras_client, _manifest_response(sample_digest), f"ghcr.io/acme/app@{sample_digest}")

        url = mock_oras_client.remote.do_request.call_args.args[0]
        assert url == f"https://ghcr.io/v2/acme/app/manifests/{sample_digest}"

    def test_creates_client_for_reference_registry(
        self, transport: RegistryTransport, mock_oras_client: MagicMock, sample_digest: str
    ) -> None:
        mock_oras_client.remote.do_request.return_value = _manifest_response(sample_digest)
        keychain = AnonymousKeychain()

        with patch.object(transport, "_create_oras_client", return_value=mock_oras_client) as create:
            _get(transport, "ghcr.io/acme/app:v1", keychain=keychain)

        create.assert_called_once_with("ghcr.io", keychain)

    def test_not_found(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        body = json.dumps({"errors": [{"code": "MANIFEST_UNKNOWN", "message": "manifest unknown"}]}).encode()

        with pytest.raises(RegistryResponseError) as exc_info:
            _get_with(transport, mock_oras_client, _response(404, body), "ghcr.io/acme/app:missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.not_found
        assert exc_info.value.detail == "manifest unknown"

    def test_server_error_is_retryable(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        with pytest.raises(RegistryResponseError) as exc_info:
            _get_with(transport, mock_oras_client, _response(503), "ghcr.io/acme/app:v1")
        assert exc_info.value.retryable

    def test_error_body_that_is_not_json(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        response = _response(500, b"<html>oops</html>", reason="Internal Server Error")

        with pytest.raises(RegistryResponseError) as exc_info:
            _get_with(transport, mock_oras_client, response, "ghcr.io/acme/app:v1")
        assert exc_info.value.detail == "Internal Server Error"

    def test_unauthorized(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        with pytest.raises(AuthenticationError, match="acme/private") as exc_info:
            _get_with(transport, mock_oras_client, _response(401), "ghcr.io/acme/private:v1")
        assert exc_info.value.registry == "ghcr.io"

    def test_network_errors_are_not_wrapped(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        with pytest.raises(requests.ConnectionError):
            _get_with(
                transport, mock_oras_client, requests.ConnectionError("connection refused"), "ghcr.io/acme/app:v1"
            )

    def test_records_registry_metrics(
        self, transport: RegistryTransport, mock_oras_client: MagicMock, sample_digest: str
    ) -> None:
        with patch.object(transport._metrics, "record_registry_request") as record:
            _get_with(transport, mock_oras_client, _manifest_response(sample_digest), "ghcr.io/acme/app:v1")
        assert record.call_args.args[0] == "ghcr.io"
        assert record.call_args.kwargs["success"] is True


class TestPlatformSelection:
    """Tests for multi-platform index handling."""

    def test_selects_matching_child(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        descriptor = _get_with(
            transport,
            mock_oras_client,
            _index_response(),
            "nginx:1.25",
            platform=Platform(os="linux", architecture="arm64"),
        )
        assert descriptor.digest == ARM64_DIGEST
        assert descriptor.size == 1235
        assert descriptor.platform == Platform(os="linux", architecture="arm64")

    def test_without_platform_returns_index_digest(
        self, transport: RegistryTransport, mock_oras_client: MagicMock
    ) -> None:
        descriptor = _get_with(transport, mock_oras_client, _index_response(), "nginx:1.25")
        assert descriptor.digest == INDEX_DIGEST
        assert descriptor.media_type == MEDIA_TYPE_OCI_INDEX

    def test_missing_platform(self, transport: RegistryTransport, mock_oras_client: MagicMock) -> None:
        with pytest.raises(PlatformNotFoundError) as exc_info:
            _get_with(
                transport,
                mock_oras_client,
                _index_response(),
                "nginx:1.25",
                platform=Platform(os="windows", architecture="amd64"),
            )
        assert exc_info.value.available == ["linux/amd64", "linux/arm64"]
        assert not exc_info.value.retryable

    def test_platform_ignored_for_single_manifest(
        self, transport: RegistryTransport, mock_oras_client: MagicMock, sample_digest: str
    ) -> None:
        descriptor = _get_with(
            transport,
            mock_oras_client,
            _manifest_response(sample_digest),
            "nginx:1.25",
            platform=Platform(os="linux", architecture="arm64"),
        )
        assert descriptor.digest == sample_digest

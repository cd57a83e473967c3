"""Credential keychains for registry access.

The resolver never authenticates on its own. It hands a Keychain to the
registry transport, which asks it for the credentials of one registry host
when the registry challenges a request.

Supported Keychains:
- AnonymousKeychain: Never returns credentials (public images only)
- StaticKeychain: Fixed host → credentials mapping (tests, CI secrets)
- DockerConfigKeychain: Docker CLI ``config.json`` (``auths`` entries,
  ``credHelpers`` and ``credsStore`` credential helpers)

Lookup Flow:
    1. Transport receives a 401 challenge from <registry>
    2. Transport calls keychain.resolve(<registry>)
    3. Keychain returns Credentials (anonymous when nothing is configured)
    4. Transport uses them for the Basic or Bearer token exchange

Example:
    >>> from imgpin.oci.auth import default_keychain
    >>> keychain = default_keychain()
    >>> creds = keychain.resolve("ghcr.io")
    >>> creds.is_anonymous
    True
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from imgpin.oci.errors import AuthenticationError
from imgpin.schemas.image import DEFAULT_REGISTRY, DOCKER_HUB_ALIASES

logger = structlog.get_logger(__name__)

DOCKER_HUB_CONFIG_KEY = "https://index.docker.io/v1/"
"""Key the Docker CLI uses for Docker Hub entries in config.json."""

CREDENTIAL_HELPER_TIMEOUT_SECONDS = 30
"""Upper bound for a docker-credential-* helper invocation."""


@dataclass(frozen=True)
class Credentials:
    """Registry credentials.

    Attributes:
        username: Username for basic auth (empty for anonymous access).
        password: Password or access token.
    """

    username: str = ""
    password: str = ""

    @classmethod
    def anonymous(cls) -> Credentials:
        """Return empty credentials."""
        return cls()

    @property
    def is_anonymous(self) -> bool:
        """Check if no credentials are set."""
        return not self.username and not self.password

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password={'***' if self.password else ''!r})"


def normalize_registry_host(registry: str) -> str:
    """Normalize a registry key to a bare host name.

    Strips URL scheme and path, and folds Docker Hub aliases into
    ``docker.io``.

    Args:
        registry: Host, URL or config.json key.

    Returns:
        Bare registry host.

    Example:
        >>> normalize_registry_host("https://index.docker.io/v1/")
        'docker.io'
    """
    host = registry.strip()
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme) :]
    host = host.split("/", 1)[0]
    if host in DOCKER_HUB_ALIASES:
        return DEFAULT_REGISTRY
    return host


class Keychain(ABC):
    """Abstract credential lookup by registry host.

    Subclasses must implement resolve(). Implementations are called from
    worker threads and must be safe to share.
    """

    @abstractmethod
    def resolve(self, registry: str) -> Credentials:
        """Return credentials for a registry host.

        Args:
            registry: Canonical registry host (e.g., ``docker.io``, ``ghcr.io``).

        Returns:
            Credentials, anonymous if none are known.

        Raises:
            AuthenticationError: If configured credentials are unusable.
        """
        ...


class AnonymousKeychain(Keychain):
    """Keychain for public registries; always anonymous."""

    def resolve(self, registry: str) -> Credentials:
        """Return anonymous credentials."""
        return Credentials.anonymous()


class StaticKeychain(Keychain):
    """Keychain backed by a fixed mapping.

    Example:
        >>> keychain = StaticKeychain({"ghcr.io": Credentials("bot", "token")})
        >>> keychain.resolve("ghcr.io").username
        'bot'
    """

    def __init__(self, credentials: Mapping[str, Credentials]) -> None:
        """Initialize StaticKeychain.

        Args:
            credentials: Registry host (or URL) → Credentials.
        """
        self._credentials = {normalize_registry_host(k): v for k, v in credentials.items()}

    def resolve(self, registry: str) -> Credentials:
        """Return the configured credentials for registry, if any."""
        return self._credentials.get(normalize_registry_host(registry), Credentials.anonymous())


class DockerConfigKeychain(Keychain):
    """Keychain reading the Docker CLI configuration file.

    Resolution order for a host: ``credHelpers[host]``, then the
    ``auths[host]`` entry, then the global ``credsStore`` helper. A missing
    or unreadable config file means anonymous access. ``identitytoken``
    entries (OAuth2 refresh tokens) are not supported and are skipped.

    Example:
        >>> keychain = DockerConfigKeychain(Path("~/.docker/config.json").expanduser())
        >>> creds = keychain.resolve("docker.io")
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize DockerConfigKeychain.

        Args:
            config_path: Path to config.json. Defaults to
                ``$DOCKER_CONFIG/config.json`` or ``~/.docker/config.json``.
        """
        self._config_path = config_path or default_docker_config_path()
        self._config: dict[str, Any] | None = None

    @property
    def config_path(self) -> Path:
        """Return the config.json path this keychain reads."""
        return self._config_path

    def resolve(self, registry: str) -> Credentials:
        """Resolve credentials for a registry host.

        Args:
            registry: Registry host.

        Returns:
            Credentials from the config file, or anonymous.

        Raises:
            AuthenticationError: If an entry is malformed or a credential
                helper fails.
        """
        host = normalize_registry_host(registry)
        config = self._load_config()

        helpers = {normalize_registry_host(k): v for k, v in config.get("credHelpers", {}).items()}
        if host in helpers:
            return self._from_helper(helpers[host], host)

        auths = {normalize_registry_host(k): v for k, v in config.get("auths", {}).items()}
        entry = auths.get(host)
        if entry:
            creds = self._from_auth_entry(entry, host)
            if not creds.is_anonymous:
                return creds

        store = config.get("credsStore")
        if store:
            return self._from_helper(store, host)

        logger.debug("docker_config_no_credentials", registry=host)
        return Credentials.anonymous()

    def _load_config(self) -> dict[str, Any]:
        """Read and memoize config.json; anonymous if absent."""
        if self._config is not None:
            return self._config

        try:
            data = json.loads(self._config_path.read_text())
        except FileNotFoundError:
            data = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("docker_config_unreadable", path=str(self._config_path), error=str(e))
            data = {}

        self._config = data if isinstance(data, dict) else {}
        return self._config

    def _from_auth_entry(self, entry: dict[str, Any], host: str) -> Credentials:
        """Decode one ``auths`` entry."""
        if entry.get("identitytoken"):
            # OAuth2 refresh tokens need a grant exchange the token backend does not perform.
            logger.warning("docker_config_identity_token_unsupported", registry=host, path=str(self._config_path))
            return Credentials.anonymous()

        encoded = entry.get("auth")
        if encoded:
            try:
                decoded = base64.b64decode(encoded).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise AuthenticationError(host, f"invalid auth entry in {self._config_path}") from e
            username, sep, password = decoded.partition(":")
            if not sep:
                raise AuthenticationError(host, f"auth entry in {self._config_path} is not user:password")
            return Credentials(username=username, password=password)

        return Credentials(username=entry.get("username", ""), password=entry.get("password", ""))

    def _from_helper(self, helper: str, host: str) -> Credentials:
        """Ask a docker-credential-<helper> binary for credentials."""
        binary = f"docker-credential-{helper}"
        if shutil.which(binary) is None:
            logger.warning("credential_helper_not_found", helper=binary, registry=host)
            return Credentials.anonymous()

        server_url = DOCKER_HUB_CONFIG_KEY if host == DEFAULT_REGISTRY else host
        try:
            result = subprocess.run(
                [binary, "get"],
                input=server_url,
                capture_output=True,
                text=True,
                check=True,
                timeout=CREDENTIAL_HELPER_TIMEOUT_SECONDS,
            )
        except subprocess.CalledProcessError as e:
            # Helpers exit non-zero with "credentials not found" for unknown hosts.
            if "not found" in (e.stdout or "").lower() or "not found" in (e.stderr or "").lower():
                return Credentials.anonymous()
            raise AuthenticationError(host, f"{binary} exited with code {e.returncode}") from e
        except subprocess.TimeoutExpired as e:
            raise AuthenticationError(host, f"{binary} timed out") from e

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise AuthenticationError(host, f"{binary} returned invalid JSON") from e

        logger.debug("credential_helper_resolved", helper=binary, registry=host)
        return Credentials(username=payload.get("Username", ""), password=payload.get("Secret", ""))


def default_docker_config_path() -> Path:
    """Return the Docker CLI config path, honouring ``DOCKER_CONFIG``."""
    config_dir = os.environ.get("DOCKER_CONFIG")
    if config_dir:
        return Path(config_dir) / "config.json"
    return Path.home() / ".docker" / "config.json"


def default_keychain() -> Keychain:
    """Return the keychain used when none is injected."""
    return DockerConfigKeychain()


__all__ = [
    "AnonymousKeychain",
    "Credentials",
    "DockerConfigKeychain",
    "Keychain",
    "StaticKeychain",
    "default_docker_config_path",
    "default_keychain",
    "normalize_registry_host",
]

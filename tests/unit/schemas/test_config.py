"""Unit tests for ResolverConfig."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from imgpin.oci.errors import OCIError
from imgpin.schemas.config import DEFAULT_USER_AGENT, MAX_WORKERS_LIMIT, ResolverConfig


class TestDefaults:
    """Tests for default values and validation."""

    def test_defaults(self) -> None:
        config = ResolverConfig()
        assert config.platform is None
        assert config.exclude == ("scratch",)
        assert config.cache is True
        assert config.user_agent == DEFAULT_USER_AGENT
        assert config.user_agent.startswith("imgpin/")
        assert config.insecure_registries == ()

    def test_platform_is_not_validated_at_load(self) -> None:
        assert ResolverConfig(platform="linux").platform == "linux"

    @pytest.mark.parametrize("workers", [0, MAX_WORKERS_LIMIT + 1])
    def test_max_workers_bounds(self, workers: int) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(max_workers=workers)

    def test_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(retries=3)  # type: ignore[call-arg]


class TestWithOverrides:
    """Tests for with_overrides()."""

    def test_none_values_are_ignored(self) -> None:
        config = ResolverConfig(platform="linux/amd64")
        assert config.with_overrides(platform=None) is config

    def test_overrides_apply(self) -> None:
        config = ResolverConfig().with_overrides(platform="linux/arm64", max_workers=4)
        assert config.platform == "linux/arm64"
        assert config.max_workers == 4

    def test_overrides_are_validated(self) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig().with_overrides(max_workers=100)


class TestFromFile:
    """Tests for from_file()."""

    def test_reads_resolver_section(self, tmp_path: Path) -> None:
        path = tmp_path / ".imgpin.yaml"
        path.write_text(
            "resolver:\n"
            "  platform: linux/amd64\n"
            "  exclude: [scratch, busybox]\n"
            "  insecure_registries: [registry.internal:5000]\n"
            "  max_workers: 8\n"
        )
        config = ResolverConfig.from_file(path)
        assert config.platform == "linux/amd64"
        assert config.exclude == ("scratch", "busybox")
        assert config.insecure_registries == ("registry.internal:5000",)
        assert config.max_workers == 8

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert ResolverConfig.from_file(path) == ResolverConfig()

    def test_missing_section_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "other.yaml"
        path.write_text("something_else: true\n")
        assert ResolverConfig.from_file(path) == ResolverConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(OCIError, match="not found"):
            ResolverConfig.from_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("resolver: [unclosed\n")
        with pytest.raises(OCIError, match="parse"):
            ResolverConfig.from_file(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(OCIError, match="mapping"):
            ResolverConfig.from_file(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = tmp_path / "invalid.yaml"
        path.write_text("resolver:\n  max_workers: 0\n")
        with pytest.raises(OCIError, match="Invalid resolver configuration"):
            ResolverConfig.from_file(path)

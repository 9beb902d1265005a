"""Tests for ConfigResolver and AgaveSettings."""

from pathlib import Path

import pytest

from agavelink.core.config import AgaveSettings, ConfigResolver
from agavelink.core.errors import ConfigError


def _resolver(tmp_path: Path, **kwargs) -> ConfigResolver:
    kwargs.setdefault("user_config_path", tmp_path / "missing_user.yaml")
    kwargs.setdefault("system_config_path", tmp_path / "missing_system.yaml")
    return ConfigResolver(**kwargs)


def test_cli_has_highest_priority(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """CLI args beat environment and files."""
    user_config = tmp_path / "config.yaml"
    user_config.write_text("agave:\n  storage_node: from-file\n")
    monkeypatch.setenv("AGAVELINK_AGAVE_STORAGE_NODE", "from-env")

    resolver = _resolver(
        tmp_path,
        cli_args={"agave": {"storage_node": "from-cli"}},
        user_config_path=user_config,
    )

    assert resolver.resolve("agave.storage_node") == ("from-cli", "cli")


def test_env_overrides_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    user_config = tmp_path / "config.yaml"
    user_config.write_text("agave:\n  tenant_url: https://file.example\n")
    monkeypatch.setenv("AGAVELINK_AGAVE_TENANT_URL", "https://env.example")

    resolver = _resolver(tmp_path, user_config_path=user_config)

    assert resolver.resolve("agave.tenant_url") == ("https://env.example", "env")


def test_user_config_overrides_system(tmp_path: Path) -> None:
    user_config = tmp_path / "user.yaml"
    user_config.write_text("agave:\n  client_name: UserClient\n")
    system_config = tmp_path / "system.yaml"
    system_config.write_text("agave:\n  client_name: SystemClient\n  storage_node: sys.node\n")

    resolver = ConfigResolver(user_config_path=user_config, system_config_path=system_config)

    assert resolver.resolve("agave.client_name") == ("UserClient", "user_config")
    assert resolver.resolve("agave.storage_node") == ("sys.node", "system_config")


def test_defaults_used_when_nothing_else(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)

    value, source = resolver.resolve("agave.tenant_url")
    assert value == "https://agave.designsafe-ci.org"
    assert source == "default"


def test_missing_key_raises(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    with pytest.raises(ConfigError):
        resolver.resolve("agave.nope")
    assert resolver.resolve_optional("agave.nope", "x") == "x"


def test_broken_yaml_is_config_error(tmp_path: Path) -> None:
    user_config = tmp_path / "config.yaml"
    user_config.write_text("agave: [unclosed\n")
    resolver = _resolver(tmp_path, user_config_path=user_config)

    with pytest.raises(ConfigError):
        resolver.resolve("agave.tenant_url")


def test_resolve_bool_normalizes_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGAVELINK_TRANSPORT_VERIFY_TLS", "off")
    resolver = _resolver(tmp_path)
    assert resolver.resolve_bool("transport.verify_tls", default=True) is False

    monkeypatch.setenv("AGAVELINK_TRANSPORT_VERIFY_TLS", "maybe")
    with pytest.raises(ConfigError):
        resolver.resolve_bool("transport.verify_tls")


@pytest.mark.parametrize(("raw", "expected"), [("QUIET", "quiet"), (" Debug ", "debug"), ("normal", "normal")])
def test_logging_level_normalized(tmp_path: Path, raw: str, expected: str) -> None:
    resolver = _resolver(tmp_path, cli_args={"logging": {"level": raw}})
    assert resolver.resolve_logging_level() == expected


def test_logging_level_rejects_unknown(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path, cli_args={"logging": {"level": "chatty"}})
    with pytest.raises(ConfigError):
        resolver.resolve_logging_level()


def test_resolve_all_reports_sources(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path, cli_args={"agave": {"client_name": "Mine"}})
    everything = resolver.resolve_all()

    assert everything["agave.client_name"].source == "cli"
    assert everything["agave.storage_node"].source == "default"


class TestAgaveSettings:
    def test_from_defaults(self, tmp_path: Path) -> None:
        settings = AgaveSettings.from_resolver(_resolver(tmp_path))
        assert settings.tenant_url == "https://agave.designsafe-ci.org"
        assert settings.storage_node == "designsafe.storage.default"
        assert settings.client_name == "SimCenter_CWE_GUI"
        assert settings.timeout is None
        assert settings.verify_tls is True

    def test_overrides(self, tmp_path: Path) -> None:
        resolver = _resolver(
            tmp_path,
            cli_args={
                "agave": {"tenant_url": "https://agave.example.org/"},
                "transport": {"timeout": "12.5", "verify_tls": False},
            },
        )
        settings = AgaveSettings.from_resolver(resolver)
        assert settings.tenant_url == "https://agave.example.org"
        assert settings.timeout == 12.5
        assert settings.verify_tls is False

    def test_bad_timeout(self, tmp_path: Path) -> None:
        resolver = _resolver(tmp_path, cli_args={"transport": {"timeout": "soon"}})
        with pytest.raises(ConfigError):
            AgaveSettings.from_resolver(resolver)

    def test_empty_string_rejected(self, tmp_path: Path) -> None:
        resolver = _resolver(tmp_path, cli_args={"agave": {"storage_node": "  "}})
        with pytest.raises(ConfigError):
            AgaveSettings.from_resolver(resolver)

"""Unit tests for swarm_dns.config.

Tests cover:
- Boolean parsing (_parse_bool)
- Config file finding and loading (find_config_files, load_config_files)
- Settings validation (load_settings)
"""

from pathlib import Path

import pytest

from swarm_dns.config import _parse_bool, find_config_files, load_config_files, load_settings
from swarm_dns.errors import ConfigError
from swarm_dns.models import RecordDefaults

BASE_ENV = {"CLOUDFLARE_TOKEN": "token"}


# =============================================================================
# Boolean Parsing Tests
# =============================================================================


def test_parse_bool_true_values() -> None:
    for val in ["true", "TRUE", "1", "yes", "y", "on", "  true  ", True]:
        assert _parse_bool(val) is True, f"Expected True for {val!r}"


def test_parse_bool_false_values() -> None:
    for val in ["false", "0", "no", "off", "maybe", False]:
        assert _parse_bool(val) is False, f"Expected False for {val!r}"


def test_parse_bool_none_uses_default() -> None:
    assert _parse_bool(None, default=True) is True
    assert _parse_bool(None, default=False) is False


# =============================================================================
# Config File Tests
# =============================================================================


def test_find_config_files_single_file_path(tmp_path: Path) -> None:
    config = tmp_path / "swarm-dns.yaml"
    config.write_text("retry_attempts: 5\n", encoding="utf-8")

    assert find_config_files(str(config)) == [str(config)]


def test_find_config_files_directory_sorted_and_excludes_template(tmp_path: Path) -> None:
    (tmp_path / "z.yaml").write_text("{}\n", encoding="utf-8")
    (tmp_path / "a.yaml").write_text("{}\n", encoding="utf-8")
    (tmp_path / "b.yaml.template").write_text("{}\n", encoding="utf-8")
    (tmp_path / "readme.txt").write_text("readme", encoding="utf-8")

    files = find_config_files(str(tmp_path))

    assert [Path(f).name for f in files] == ["a.yaml", "z.yaml"]


def test_find_config_files_nonexistent_path() -> None:
    assert find_config_files("/nonexistent/path/to/config.yaml") == []


def test_load_config_files_merges_in_order(tmp_path: Path) -> None:
    (tmp_path / "a.yaml").write_text("retry_attempts: 5\nsync_mode: once\n", encoding="utf-8")
    (tmp_path / "b.yaml").write_text("retry_attempts: 7\n", encoding="utf-8")
    (tmp_path / "c.yaml").write_text("", encoding="utf-8")

    assert load_config_files(str(tmp_path)) == {"RETRY_ATTEMPTS": 7, "SYNC_MODE": "once"}


def test_load_config_files_rejects_non_mapping(tmp_path: Path) -> None:
    config = tmp_path / "bad.yaml"
    config.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config_files(str(config))


def test_load_config_files_reports_invalid_yaml(tmp_path: Path) -> None:
    config = tmp_path / "broken.yaml"
    config.write_text("key: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to load config"):
        load_config_files(str(config))


# =============================================================================
# Settings Tests
# =============================================================================


def test_defaults() -> None:
    settings = load_settings(BASE_ENV)

    assert settings.cloudflare_token == "token"
    assert settings.cloudflare_api_url == "https://api.cloudflare.com/client/v4"
    assert settings.label_prefix == "dns.cloudflare."
    assert settings.retry_attempts == 3
    assert settings.retry_base_delay_seconds == 300.0
    assert settings.process_interval_seconds == 5.0
    assert settings.rescan_interval_seconds == 3600.0
    assert settings.use_reverse_proxy_labels is False
    assert settings.defaults == RecordDefaults()
    assert settings.proxy_defaults == RecordDefaults()
    assert settings.sync_mode == "watch"
    assert settings.log_level == "INFO"


def test_missing_token_is_reported() -> None:
    with pytest.raises(ConfigError) as exc_info:
        load_settings({})

    assert exc_info.value.problems == ["Missing required environment variable: CLOUDFLARE_TOKEN"]


def test_all_problems_are_collected() -> None:
    env = {
        "RETRY_ATTEMPTS": "zero",
        "DEFAULT_TTL": "0",
        "DEFAULT_RECORD_TYPE": "SRV",
        "SYNC_MODE": "sometimes",
    }

    with pytest.raises(ConfigError) as exc_info:
        load_settings(env)

    problems = exc_info.value.problems
    assert len(problems) == 5
    assert any("CLOUDFLARE_TOKEN" in p for p in problems)
    assert any(p.startswith("RETRY_ATTEMPTS must be an integer") for p in problems)
    assert any(p.startswith("DEFAULT_TTL must be >= 1") for p in problems)
    assert any(p.startswith("DEFAULT_RECORD_TYPE must be one of") for p in problems)
    assert any("Invalid SYNC_MODE" in p for p in problems)
    assert "; " in str(exc_info.value)


def test_retry_and_interval_settings() -> None:
    env = dict(
        BASE_ENV,
        RETRY_ATTEMPTS="5",
        RETRY_DELAY_MS="1500",
        IP_CHECK_INTERVAL_MS="60000",
        PROCESS_INTERVAL_SECONDS="2",
    )

    settings = load_settings(env)

    assert settings.retry_attempts == 5
    assert settings.retry_base_delay_seconds == 1.5
    assert settings.rescan_interval_seconds == 60.0
    assert settings.process_interval_seconds == 2.0


def test_legacy_variable_names_are_accepted() -> None:
    settings = load_settings(dict(BASE_ENV, RETRY_DELAY="2000", IP_CHECK_INTERVAL="10000"))

    assert settings.retry_base_delay_seconds == 2.0
    assert settings.rescan_interval_seconds == 10.0


def test_zero_retry_delay_is_allowed() -> None:
    assert load_settings(dict(BASE_ENV, RETRY_DELAY_MS="0")).retry_base_delay_seconds == 0.0


def test_default_content_setting() -> None:
    settings = load_settings(dict(BASE_ENV, DEFAULT_CONTENT=" 203.0.113.9 "))

    assert settings.defaults == RecordDefaults(content="203.0.113.9")
    assert settings.proxy_defaults == RecordDefaults()


def test_traefik_settings() -> None:
    env = dict(
        BASE_ENV,
        USE_TRAEFIK_LABELS="true",
        TRAEFIK_DEFAULT_RECORD_TYPE="cname",
        TRAEFIK_DEFAULT_CONTENT="origin.example.com",
        TRAEFIK_DEFAULT_PROXIED="false",
        TRAEFIK_DEFAULT_TTL="120",
    )

    settings = load_settings(env)

    assert settings.use_reverse_proxy_labels is True
    assert settings.proxy_defaults == RecordDefaults("CNAME", "origin.example.com", 120, False)


def test_traefik_cname_requires_content() -> None:
    env = dict(BASE_ENV, TRAEFIK_DEFAULT_RECORD_TYPE="CNAME")

    with pytest.raises(ConfigError, match="TRAEFIK_DEFAULT_CONTENT is required"):
        load_settings(env)


def test_empty_values_use_defaults() -> None:
    settings = load_settings(dict(BASE_ENV, RETRY_ATTEMPTS="", DNS_LABEL_PREFIX="  "))

    assert settings.retry_attempts == 3
    assert settings.label_prefix == "dns.cloudflare."


def test_yaml_file_values_are_overridden_by_environment(tmp_path: Path) -> None:
    config = tmp_path / "swarm-dns.yaml"
    config.write_text(
        "retry_attempts: 4\nuse_traefik_labels: true\nlog_level: debug\n", encoding="utf-8"
    )
    env = dict(BASE_ENV, SWARM_DNS_CONFIG_PATH=str(config), RETRY_ATTEMPTS="6")

    settings = load_settings(env)

    assert settings.retry_attempts == 6
    assert settings.use_reverse_proxy_labels is True
    assert settings.log_level == "DEBUG"

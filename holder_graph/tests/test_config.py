import os

import pytest

from holder_graph.core.config import (
    ConfigError,
    RenderSettings,
    load_settings,
    settings_from_dict,
)


def test_empty_config_uses_defaults():
    settings = settings_from_dict({}, use_env=False)

    assert settings.analysis.freshness_hours == 24.0
    assert settings.analysis.history_cap == 30
    assert settings.analysis.single_flight is False
    assert settings.provider.top_holders == 150
    assert settings.layout.iterations == 300
    assert (settings.render.width, settings.render.height) == (1200, 800)
    assert settings.cache.ttl_sec == 3600.0
    assert settings.transport.dry_run is True


def test_load_from_yaml(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("HOLDER_GRAPH_"):
            monkeypatch.delenv(key)
    path = tmp_path / "settings.yaml"
    path.write_text(
        "analysis:\n"
        "  freshness_hours: 6\n"
        "  single_flight: true\n"
        "render:\n"
        "  width: 800\n"
        "  colors:\n"
        "    contract: '#aa0000'\n",
        encoding="utf-8",
    )

    settings = load_settings(str(path))

    assert settings.analysis.freshness_hours == 6.0
    assert settings.analysis.single_flight is True
    assert settings.render.width == 800
    assert settings.render.colors.contract == "#aa0000"
    assert settings.render.colors.wallet == "#4444ff"


def test_env_overrides_nested_values(monkeypatch):
    monkeypatch.setenv("HOLDER_GRAPH_ANALYSIS__FRESHNESS_HOURS", "12")
    monkeypatch.setenv("HOLDER_GRAPH_PROVIDER__API_KEY", "12345")
    monkeypatch.setenv("HOLDER_GRAPH_TRANSPORT__DRY_RUN", "false")

    settings = settings_from_dict({"analysis": {"freshness_hours": 48}})

    assert settings.analysis.freshness_hours == 12.0
    assert settings.provider.api_key == "12345"
    assert settings.transport.dry_run is False


def test_env_overrides_leave_caller_config_untouched(monkeypatch):
    monkeypatch.setenv("HOLDER_GRAPH_ANALYSIS__FRESHNESS_HOURS", "12")
    config = {"analysis": {"freshness_hours": 48}, "render": {"colors": {"contract": "#aa0000"}}}

    settings_from_dict(config)

    assert config == {"analysis": {"freshness_hours": 48}, "render": {"colors": {"contract": "#aa0000"}}}


def test_market_defaults():
    market = settings_from_dict({}, use_env=False).market

    assert market.base_url == "https://api.dexscreener.com/latest"
    assert (market.timeout_sec, market.cache_ttl_sec) == (10.0, 60.0)


def test_invalid_ranges_raise_config_error():
    with pytest.raises(ConfigError):
        settings_from_dict({"render": {"min_node_size": 60, "max_node_size": 50}}, use_env=False)
    with pytest.raises(ConfigError):
        settings_from_dict({"analysis": {"supported_chains": ["eth", "doge"]}}, use_env=False)
    with pytest.raises(ConfigError):
        settings_from_dict({"analysis": {"history_cap": 31}}, use_env=False)


def test_render_settings_validate_directly():
    with pytest.raises(ValueError):
        RenderSettings(flow_domain=(10.0, 10.0))


def test_missing_or_broken_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(str(tmp_path / "nope.yaml"))

    broken = tmp_path / "broken.yaml"
    broken.write_text("analysis: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="parsing"):
        load_settings(str(broken))

"""Tests for configuration loading and validation."""

import pytest

from autotrader.services import ConfigService, ConfigValidationException, EngineSettings


def write_config(tmp_path, content: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    return str(path)


class TestConfigService:
    """Test config file loading."""

    def test_missing_file_uses_defaults(self, tmp_path):
        service = ConfigService(str(tmp_path / "missing.yaml"))

        assert service.load_and_validate() == {}
        assert service.engine_settings() == EngineSettings()

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "engine:\n  tick_interval_seconds: 2\n")
        monkeypatch.setenv("AUTOTRADER_CONFIG", path)

        service = ConfigService()

        assert service.config_path == path
        service.load_and_validate()
        assert service.get("engine.tick_interval_seconds") == 2

    def test_valid_config(self, tmp_path):
        path = write_config(tmp_path, """
engine:
  tick_interval_seconds: 0.5
  max_consecutive_errors: 3
ledger:
  mode: demo
  demo_initial_balance: 5000
risk:
  max_order_value: 1000
logging:
  level: DEBUG
""")
        service = ConfigService(path)
        service.load_and_validate()

        settings = service.engine_settings()
        assert settings.tick_interval_seconds == 0.5
        assert settings.max_consecutive_errors == 3
        assert settings.min_trade_interval_seconds == 60.0
        assert service.get("ledger.demo_initial_balance") == 5000
        assert service.get("logging.level") == "DEBUG"

    def test_get_default(self, tmp_path):
        service = ConfigService(write_config(tmp_path, "ledger:\n  mode: live\n"))
        service.load_and_validate()

        assert service.get("ledger.quote_currency", "USDT") == "USDT"
        assert service.get("ledger.mode.extra", "x") == "x"

    def test_empty_file(self, tmp_path):
        service = ConfigService(write_config(tmp_path, ""))
        assert service.load_and_validate() == {}

    @pytest.mark.parametrize(
        "content,path",
        [
            ("unknown: 1\n", "unknown"),
            ("engine:\n  tick_interval_seconds: fast\n", "engine.tick_interval_seconds"),
            ("engine:\n  max_consecutive_errors: 0\n", "engine.max_consecutive_errors"),
            ("engine:\n  max_consecutive_errors: true\n", "engine.max_consecutive_errors"),
            ("ledger:\n  mode: paper\n", "ledger.mode"),
            ("logging:\n  level: LOUD\n", "logging.level"),
            ("risk: []\n", "risk"),
        ],
    )
    def test_invalid_values(self, tmp_path, content, path):
        service = ConfigService(write_config(tmp_path, content))

        with pytest.raises(ConfigValidationException) as exc_info:
            service.load_and_validate()

        assert [e.path for e in exc_info.value.errors] == [path]

    def test_invalid_yaml(self, tmp_path):
        service = ConfigService(write_config(tmp_path, "engine: [unclosed\n"))

        with pytest.raises(ConfigValidationException) as exc_info:
            service.load_and_validate()

        assert "Invalid YAML syntax" in str(exc_info.value)

    def test_non_mapping_root(self, tmp_path):
        service = ConfigService(write_config(tmp_path, "- a\n- b\n"))

        with pytest.raises(ConfigValidationException):
            service.load_and_validate()


class TestEngineSettings:
    """Test typed engine settings."""

    def test_ignores_unknown_keys(self):
        settings = EngineSettings.from_config({"engine": {"tick_interval_seconds": 3, "other": 1}})

        assert settings.tick_interval_seconds == 3

    def test_defaults(self):
        settings = EngineSettings.from_config(None)

        assert settings.max_consecutive_errors == 5
        assert settings.trade_history_limit == 100

"""
Tests for configuration system
"""
import pytest

from config import (
    Config,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    config_by_name,
    get_config,
)


@pytest.mark.unit
class TestBaseConfig:
    """Tests for base configuration"""

    def test_base_config_has_secret_key(self):
        assert Config.SECRET_KEY

    def test_base_config_disables_modification_tracking(self):
        assert Config.SQLALCHEMY_TRACK_MODIFICATIONS is False

    def test_base_config_enables_csrf(self):
        assert Config.WTF_CSRF_ENABLED is True

    def test_base_config_has_settlement_currency(self):
        assert Config.SETTLEMENT_CURRENCY == "PLN"

    def test_base_config_has_logging_settings(self):
        assert hasattr(Config, "LOG_LEVEL")
        assert "%(levelname)s" in Config.LOG_FORMAT


@pytest.mark.unit
class TestEnvironmentConfigs:
    """Tests for per-environment configuration"""

    def test_development_is_debug(self):
        assert DevelopmentConfig.DEBUG is True
        assert DevelopmentConfig.LOG_LEVEL == "DEBUG"

    def test_production_hardens_cookies(self):
        assert ProductionConfig.DEBUG is False
        assert ProductionConfig.SESSION_COOKIE_SECURE is True
        assert ProductionConfig.SESSION_COOKIE_HTTPONLY is True

    def test_testing_uses_memory_database(self):
        assert TestingConfig.TESTING is True
        assert TestingConfig.SQLALCHEMY_DATABASE_URI == "sqlite://"
        assert TestingConfig.WTF_CSRF_ENABLED is False


@pytest.mark.unit
class TestGetConfig:
    """Tests for get_config"""

    def test_get_config_testing(self, monkeypatch):
        monkeypatch.setenv("FLASK_ENV", "testing")
        assert get_config() is TestingConfig

    def test_get_config_production(self, monkeypatch):
        monkeypatch.setenv("FLASK_ENV", "production")
        assert get_config() is ProductionConfig

    def test_get_config_defaults_to_development(self, monkeypatch):
        monkeypatch.delenv("FLASK_ENV", raising=False)
        assert get_config() is DevelopmentConfig

    def test_get_config_unknown_env(self, monkeypatch):
        monkeypatch.setenv("FLASK_ENV", "staging")
        assert get_config() is DevelopmentConfig

    def test_config_by_name_default(self):
        assert config_by_name["default"] is DevelopmentConfig

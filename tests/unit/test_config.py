"""
Unit tests for engine settings and logging setup.
"""

import logging

import pytest

from dynpage.client import HttpTransport
from dynpage.config import Settings, get_settings
from dynpage.log import configure_logging, set_level


class TestSettings:
    def test_defaults(self, settings):
        assert settings.environment == "development"
        assert settings.auth_header_name == "avToken"
        assert settings.request_timeout_seconds is None
        assert settings.default_page_size == 10
        assert settings.page_no_param == "pageNo"
        assert settings.page_size_param == "pageSize"
        assert settings.empty_state_text == "No data found"
        assert not settings.is_production

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("DYNPAGE_ENVIRONMENT", "production")
        monkeypatch.setenv("DYNPAGE_API_BASE_URL", "https://console.example.com/api")
        monkeypatch.setenv("DYNPAGE_DEFAULT_PAGE_SIZE", "25")
        monkeypatch.setenv("DYNPAGE_REQUEST_TIMEOUT_SECONDS", "30")

        settings = Settings(_env_file=None)

        assert settings.is_production
        assert settings.api_base_url == "https://console.example.com/api"
        assert settings.default_page_size == 25
        assert settings.request_timeout_seconds == 30.0

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    @pytest.mark.asyncio
    async def test_transport_from_settings(self):
        settings = Settings(_env_file=None, api_base_url="https://console.example.com/api/", api_token="tok")

        transport = HttpTransport.from_settings(settings)
        try:
            assert transport.base_url == "https://console.example.com/api"
            assert transport._http.headers["avToken"] == "tok"
        finally:
            await transport.aclose()


class TestLogging:
    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger("dynpage")
        handlers = list(logger.handlers)
        level = logger.level
        yield
        logger.handlers = handlers
        logger.setLevel(level)

    def test_configure_logging_adds_one_handler(self):
        logger = configure_logging("DEBUG")
        configure_logging("DEBUG")

        assert logger.name == "dynpage"
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_set_level_accepts_names_and_constants(self):
        set_level("warning")
        assert logging.getLogger("dynpage").level == logging.WARNING

        set_level(logging.ERROR)
        assert logging.getLogger("dynpage").level == logging.ERROR

"""
Tests for configuration and structured logging
"""

import io
import json
import logging
import pytest
from decimal import Decimal

from pydantic import ValidationError

from personal_bank import config as config_module
from personal_bank.config import BankConfig, get_config, reload_config
from personal_bank.logging_config import (
    JSONFormatter, get_logger, log_action, setup_logging
)


class TestBankConfig:
    """Test settings defaults and environment overrides"""

    def test_defaults(self, monkeypatch):
        """Test default values"""
        monkeypatch.delenv("BANK_STORAGE_BACKEND", raising=False)
        config = BankConfig(_env_file=None)

        assert config.storage_backend == "json"
        assert config.data_file == "accounts.json"
        assert config.reference_currency == "GBP"
        assert config.max_failed_login_attempts == 3
        assert config.lockout_seconds == 60
        assert config.exchange_rates["USD"] == Decimal("1.24")
        assert set(config.exchange_rates) == {"EUR", "USD", "AUD", "CNY", "CHF"}

    def test_environment_overrides(self, monkeypatch):
        """Test BANK_ prefixed variables are read"""
        monkeypatch.setenv("BANK_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("BANK_LOCKOUT_SECONDS", "30")
        monkeypatch.setenv("BANK_EXCHANGE_RATES", '{"USD": "1.30", "JPY": "190"}')

        config = BankConfig(_env_file=None)

        assert config.storage_backend == "memory"
        assert config.lockout_seconds == 30
        assert config.exchange_rates == {"USD": Decimal("1.30"), "JPY": Decimal("190")}

        table = config.rate_table()
        assert table.is_supported("JPY")
        assert not table.is_supported("EUR")

    def test_invalid_values(self):
        """Test bad settings fail at construction"""
        with pytest.raises(ValidationError):
            BankConfig(_env_file=None, storage_backend="redis")

        with pytest.raises(ValidationError):
            BankConfig(_env_file=None, exchange_rates={"USD": "-1"})

        with pytest.raises(ValidationError):
            BankConfig(_env_file=None, exchange_rates={"GBP": "1"})

        with pytest.raises(ValidationError):
            BankConfig(_env_file=None, max_failed_login_attempts=0)

    def test_reload_config(self, monkeypatch):
        """Test the global instance is rebuilt from the environment"""
        original = get_config()
        monkeypatch.setenv("BANK_LOG_LEVEL", "DEBUG")
        try:
            reloaded = reload_config()
            assert reloaded.log_level == "DEBUG"
            assert get_config() is reloaded
        finally:
            config_module.config = original


class TestLogging:
    """Test JSON formatting and logger setup"""

    def teardown_method(self):
        """Undo setup_logging so other tests keep propagating to caplog"""
        logger = logging.getLogger("personal_bank")
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    def test_json_formatter(self):
        """Test structured fields are rendered and empty ones dropped"""
        record = logging.LogRecord(
            "personal_bank.ledger", logging.INFO, __file__, 1, "hello %s", ("world",), None
        )
        record.action = "deposit"
        record.resource = "A1"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "personal_bank.ledger"
        assert entry["action"] == "deposit"
        assert entry["resource"] == "A1"
        assert "extra" not in entry
        assert "timestamp" in entry

    def test_setup_logging(self):
        """Test handler, level and propagation"""
        logger = setup_logging("DEBUG")

        assert logger.name == "personal_bank"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert not logger.propagate

        # Calling again does not stack handlers
        setup_logging("INFO", log_format="text")
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_log_action_emits_structured_record(self):
        """Test log_action output through a JSON handler"""
        logger = setup_logging("INFO")
        stream = io.StringIO()
        logger.handlers[0].stream = stream

        log_action(get_logger("personal_bank.accounts"), "info", "Deposited",
                   action="deposit", resource="A1", extra={"amount": "10"})

        entry = json.loads(stream.getvalue())
        assert entry["message"] == "Deposited"
        assert entry["action"] == "deposit"
        assert entry["resource"] == "A1"
        assert entry["extra"] == {"amount": "10"}

    def test_log_action_respects_level(self):
        """Test records below the logger level are skipped"""
        logger = setup_logging("WARNING")
        stream = io.StringIO()
        logger.handlers[0].stream = stream

        log_action(logger, "info", "quiet")
        log_action(logger, "warning", "loud")

        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "loud"

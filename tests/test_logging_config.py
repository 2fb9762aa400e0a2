"""
Tests for structured logging and configuration
"""

import json
import logging

from emi_ledger.config import EmiLedgerConfig, get_config, reload_config
from emi_ledger.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestLogging:
    """Test JSON log output"""

    def test_get_logger_namespace(self):
        assert get_logger("loans").name == "emi_ledger.loans"
        assert get_logger("emi_ledger.api").name == "emi_ledger.api"
        assert get_logger().name == "emi_ledger"

    def test_json_formatter_fields(self):
        record = logging.LogRecord(
            name="emi_ledger.loans", level=logging.INFO, pathname=__file__, lineno=1,
            msg="Recorded payment", args=(), exc_info=None
        )
        record.loan_id = "L1"
        record.action = "record_payment"

        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["message"] == "Recorded payment"
        assert entry["loan_id"] == "L1"
        assert entry["action"] == "record_payment"
        assert "payment_id" not in entry

    def test_log_action(self, caplog):
        logger = setup_logging("DEBUG", "text", logger_name="emi_ledger.test")
        logger.addHandler(caplog.handler)
        try:
            log_action(logger, "info", "Loan archived", action="archive_loan", loan_id="L9",
                       extra={"version": 2})
        finally:
            logger.removeHandler(caplog.handler)

        record = caplog.records[-1]
        assert record.getMessage() == "Loan archived"
        assert record.action == "archive_loan"
        assert record.loan_id == "L9"
        assert record.extra == {"version": 2}
        assert not hasattr(record, "payment_id")

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("WARNING", logger_name="emi_ledger.setup")
        logger = setup_logging("WARNING", logger_name="emi_ledger.setup")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.WARNING


class TestConfig:
    """Test environment-based configuration"""

    def test_defaults(self):
        config = EmiLedgerConfig()
        assert config.default_currency == "INR"
        assert config.schedule_safety_limit_months == 1200
        assert config.enable_audit_logging is True

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("EMI_LEDGER_DATABASE_URL", "memory://")
        monkeypatch.setenv("EMI_LEDGER_API_PORT", "9000")

        config = reload_config()
        try:
            assert config.database_url == "memory://"
            assert config.api_port == 9000
            assert get_config() is config
        finally:
            monkeypatch.delenv("EMI_LEDGER_DATABASE_URL")
            monkeypatch.delenv("EMI_LEDGER_API_PORT")
            reload_config()

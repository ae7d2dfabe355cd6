"""
Unit Tests for settings and structured logging
"""
import json
import logging
import pytest
from pydantic import ValidationError as PydanticValidationError

from barback.core.settings import Settings
from barback.exceptions import IncompatibleUnitsError, ValidationError
from barback.logging_config import JSONFormatter


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUANTITY_SCALE", raising=False)
        s = Settings(_env_file=None)
        assert s.DEFAULT_BASE_UNIT == "each"
        assert s.QUANTITY_SCALE == 4
        assert s.COUNT_OFF_MENU_SALES is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("COUNT_OFF_MENU_SALES", "true")
        monkeypatch.setenv("LOG_LEVEL", " debug ")
        s = Settings(_env_file=None)
        assert s.COUNT_OFF_MENU_SALES is True
        assert s.LOG_LEVEL == "DEBUG"

    def test_invalid_log_format(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, LOG_FORMAT="xml")


class TestJSONFormatter:

    def test_extra_fields_included(self):
        record = logging.LogRecord("barback.test", logging.INFO, __file__, 1, "pass done", (), None)
        record.run_id = 7
        record.alerts_created = 2

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "pass done"
        assert payload["level"] == "INFO"
        assert payload["run_id"] == 7
        assert payload["alerts_created"] == 2
        assert "args" not in payload


class TestExceptions:

    def test_validation_error_details(self):
        err = ValidationError("Count quantity cannot be negative", field="quantity", value=-1)
        assert err.to_dict() == {
            "error": "VALIDATION_ERROR",
            "message": "Count quantity cannot be negative",
            "details": {"field": "quantity", "value": "-1"},
        }

    def test_incompatible_units_message(self):
        err = IncompatibleUnitsError("ml", "g", reason="volume cannot be converted to weight")
        assert err.message == "Cannot convert 'ml' to 'g': volume cannot be converted to weight"

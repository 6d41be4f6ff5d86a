"""
Unit tests for the error taxonomy and its log output
"""

import logging
from core.exceptions import (
    AuthenticationError,
    JobFatalError,
    NonRetryableError,
    RetryableError,
    StoreError,
    TransientFetchError,
)
from core.logging import ErrorContextFormatter, LOG_FORMAT


class TestExceptions:

    def test_retry_classification(self):
        assert isinstance(TransientFetchError("timeout"), RetryableError)
        assert isinstance(AuthenticationError("bad password"), NonRetryableError)
        assert isinstance(JobFatalError("discovery failed"), NonRetryableError)

    def test_context_and_cause(self):
        cause = ValueError("duplicate key")
        error = StoreError("Failed to create formations record", context={"source_id": "a"}, original_exception=cause)

        data = error.to_dict()

        assert error.__cause__ is cause
        assert data["error_type"] == "StoreError"
        assert data["context"]["source_id"] == "a"
        assert "error_timestamp" in data["context"]
        assert data["original_error"] == "duplicate key"
        assert "Caused by: ValueError" in str(error)


class TestErrorContextFormatter:

    def _record(self, **extra):
        record = logging.LogRecord("scraper.runner", logging.ERROR, __file__, 1, "Failed to sync a", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_appends_error_context(self):
        line = ErrorContextFormatter(LOG_FORMAT).format(self._record(error_context={"source_id": "a"}))

        assert line.endswith('Failed to sync a | context={"source_id": "a"}')

    def test_plain_record_unchanged(self):
        line = ErrorContextFormatter(LOG_FORMAT).format(self._record())

        assert line.endswith("scraper.runner | Failed to sync a")

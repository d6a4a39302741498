"""Unit tests for spec workflow logging and observability.

This module tests the logging infrastructure, performance monitoring,
and observability hooks.
"""

import json
import logging
import pytest
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch, MagicMock

from spec_workflow.workflow_logging import (
    LOGGER_NAME,
    setup_logging,
    JsonFormatter,
    PerformanceMonitor,
    log_performance,
    log_operation,
    ObservabilityHooks,
    log_batch_completed,
    log_error_with_context,
    log_stage_transition,
    observability_hooks,
    performance_monitor,
)


@pytest.fixture(autouse=True)
def clean_metrics():
    performance_monitor.clear()
    yield
    performance_monitor.clear()


class TestJsonFormatter:
    """Test cases for JsonFormatter."""

    def test_json_formatter_basic(self):
        """Test basic JSON formatting."""
        formatter = JsonFormatter()

        logger = logging.getLogger("test")
        record = logger.makeRecord("test", logging.INFO, __file__, 10, "Test message", (), None)

        data = json.loads(formatter.format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert "module" in data
        assert "function" in data
        assert data["line"] == 10

    def test_json_formatter_with_exception(self):
        """Test JSON formatting with exception info."""
        formatter = JsonFormatter()

        logger = logging.getLogger("test")
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = logger.makeRecord("test", logging.ERROR, __file__, 10, "Test message", (), sys.exc_info())

        data = json.loads(formatter.format(record))

        assert data["level"] == "ERROR"
        assert "ValueError" in data["exception"]

    def test_json_formatter_with_extra_fields(self):
        """Test JSON formatting with extra fields."""
        formatter = JsonFormatter()

        logger = logging.getLogger("test")
        record = logger.makeRecord("test", logging.INFO, __file__, 10, "Test message", (), None)
        record.extra_fields = {"custom_field": "custom_value", "path": Path("/tmp/feature")}

        data = json.loads(formatter.format(record))

        assert data["custom_field"] == "custom_value"
        assert data["path"] == str(Path("/tmp/feature"))


class TestPerformanceMonitor:
    """Test cases for PerformanceMonitor."""

    def test_record_metric(self):
        """Test recording a performance metric."""
        monitor = PerformanceMonitor()

        monitor.record_metric("test_metric", 42, {"tag": "test"})
        metrics = monitor.get_metrics("test_metric")

        assert len(metrics["test_metric"]) == 1
        assert metrics["test_metric"][0]["value"] == 42
        assert metrics["test_metric"][0]["tags"]["tag"] == "test"
        assert "timestamp" in metrics["test_metric"][0]

    def test_get_all_metrics(self):
        """Test getting all metrics."""
        monitor = PerformanceMonitor()

        monitor.record_metric("metric1", 1)
        monitor.record_metric("metric2", 2)
        monitor.record_metric("metric1", 3)
        all_metrics = monitor.get_metrics()

        assert len(all_metrics) == 2
        assert [metric["value"] for metric in all_metrics["metric1"]] == [1, 3]
        assert all_metrics["metric2"][0]["value"] == 2

    def test_clear(self):
        """Test clearing metrics."""
        monitor = PerformanceMonitor()
        monitor.record_metric("metric1", 1)

        monitor.clear()

        assert monitor.get_metrics() == {}
        assert monitor.get_metrics("metric1") == {"metric1": []}


class TestLogPerformance:
    """Test cases for log_performance decorator."""

    def test_log_performance_decorator(self):
        """Test the log_performance decorator."""
        @log_performance("test_operation")
        def test_function():
            return "test_result"

        assert test_function() == "test_result"

        metrics = performance_monitor.get_metrics("test_operation_duration")
        assert len(metrics["test_operation_duration"]) == 1
        assert metrics["test_operation_duration"][0]["value"] >= 0
        assert metrics["test_operation_duration"][0]["tags"]["status"] == "success"

    def test_log_performance_decorator_with_exception(self):
        """Test the log_performance decorator with exception."""
        @log_performance("test_operation")
        def test_function():
            raise ValueError("Test error")

        with pytest.raises(ValueError):
            test_function()

        metrics = performance_monitor.get_metrics("test_operation_duration")
        assert metrics["test_operation_duration"][0]["tags"]["status"] == "error"
        assert metrics["test_operation_duration"][0]["tags"]["error_type"] == "ValueError"

    def test_complete_batch_is_timed(self):
        """Test that batch completion records a duration metric."""
        from spec_workflow.completion import complete_batch

        complete_batch("- [ ] 1. One\n", "1")

        assert len(performance_monitor.get_metrics("complete_batch_duration")["complete_batch_duration"]) == 1


class TestLogOperation:
    """Test cases for log_operation context manager."""

    def test_log_operation_success(self):
        """Test successful operation logging."""
        with patch("spec_workflow.workflow_logging.std_logging.getLogger") as mock_logger:
            mock_logger_instance = MagicMock()
            mock_logger.return_value = mock_logger_instance

            with log_operation("test_operation", param1="value1"):
                pass

            assert mock_logger_instance.info.call_count == 2
            assert mock_logger_instance.error.called is False
            fields = mock_logger_instance.info.call_args[1]["extra"]["extra_fields"]
            assert fields["status"] == "completed"
            assert fields["param1"] == "value1"

    def test_log_operation_with_exception(self):
        """Test operation logging with exception."""
        with patch("spec_workflow.workflow_logging.std_logging.getLogger") as mock_logger:
            mock_logger_instance = MagicMock()
            mock_logger.return_value = mock_logger_instance

            with pytest.raises(ValueError):
                with log_operation("test_operation"):
                    raise ValueError("Test error")

            assert mock_logger_instance.error.called
            assert "Test error" in str(mock_logger_instance.error.call_args)


class TestObservabilityHooks:
    """Test cases for ObservabilityHooks."""

    def test_register_and_trigger_hooks(self):
        """Test registering and triggering hooks."""
        hooks = ObservabilityHooks()
        callback = MagicMock()

        hooks.register_hook("test_event", callback)
        hooks.trigger_hooks("test_event", test_param="test_value")

        callback.assert_called_once_with(test_param="test_value")

    def test_unregister_hook(self):
        """Test that an unregistered hook is no longer called."""
        hooks = ObservabilityHooks()
        callback = MagicMock()
        hooks.register_hook("test_event", callback)

        hooks.unregister_hook("test_event", callback)
        hooks.trigger_hooks("test_event")

        callback.assert_not_called()

    def test_log_workflow_event(self):
        """Test that workflow events reach hooks with their path."""
        hooks = ObservabilityHooks()
        callback = MagicMock()
        hooks.register_hook("test_event", callback)

        hooks.log_workflow_event("test_event", path="/specs/login", param="value")

        kwargs = callback.call_args.kwargs
        assert kwargs["path"] == "/specs/login"
        assert kwargs["param"] == "value"
        assert "timestamp" in kwargs
        assert "event_type" not in kwargs

    def test_hook_failure_handling(self):
        """Test that hook failures don't crash the system."""
        hooks = ObservabilityHooks()
        after = MagicMock()

        def failing_callback(**data):
            raise ValueError("Hook failed")

        hooks.register_hook("test_event", failing_callback)
        hooks.register_hook("test_event", after)

        hooks.trigger_hooks("test_event", param="value")

        after.assert_called_once_with(param="value")


class TestLoggingFunctions:
    """Test cases for logging convenience functions."""

    def test_log_stage_transition(self):
        """Test log_stage_transition function."""
        with patch("spec_workflow.workflow_logging.observability_hooks") as mock_hooks:
            log_stage_transition("confirmed", "design", path="/specs/login")

            mock_hooks.log_workflow_event.assert_called_once()
            call_args = mock_hooks.log_workflow_event.call_args
            assert call_args[0] == ("stage_confirmed",)
            assert call_args[1]["stage"] == "design"
            assert call_args[1]["path"] == "/specs/login"

    def test_log_batch_completed(self):
        """Test log_batch_completed function."""
        with patch("spec_workflow.workflow_logging.observability_hooks") as mock_hooks:
            log_batch_completed(["1.1", "1.2"], ["1"], path="/specs/login")

            call_args = mock_hooks.log_workflow_event.call_args
            assert call_args[0] == ("batch_completed",)
            assert call_args[1]["completed"] == ["1.1", "1.2"]
            assert call_args[1]["auto_completed"] == ["1"]

    def test_log_error_with_context(self):
        """Test log_error_with_context function."""
        with patch("spec_workflow.workflow_logging.std_logging.getLogger") as mock_logger:
            error = ValueError("Test error")
            context = {"operation": "test_operation", "param": "value"}

            log_error_with_context(error, context, extra_param="extra_value")

            assert mock_logger.return_value.error.called
            call_args = mock_logger.return_value.error.call_args
            assert "Test error" in call_args[0][0]
            fields = call_args[1]["extra"]["extra_fields"]
            assert fields["context"]["operation"] == "test_operation"
            assert fields["context"]["param"] == "value"
            assert fields["extra_param"] == "extra_value"
            assert fields["error_type"] == "ValueError"


class TestLoggingIntegration:
    """Integration tests for logging functionality."""

    @pytest.fixture(autouse=True)
    def reset_logger(self):
        yield
        logger = logging.getLogger(LOGGER_NAME)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def test_setup_logging(self):
        """Test setting up logging configuration."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "test.log"

            setup_logging(log_level=logging.DEBUG, log_file=log_file)
            logging.getLogger(f"{LOGGER_NAME}.test").info("Test message")

            assert log_file.exists()
            content = log_file.read_text()
            assert "Test message" in content
            for line in content.strip().split("\n"):
                json.loads(line)

            for handler in logging.getLogger(LOGGER_NAME).handlers:
                handler.close()

    def test_end_to_end_logging_flow(self):
        """Test end-to-end logging flow."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "test.log"
            setup_logging(log_level=logging.INFO, log_file=log_file)

            hook = MagicMock()
            observability_hooks.register_hook("stage_skipped", hook)
            try:
                log_stage_transition("skipped", "design", path="/specs/login")
            finally:
                observability_hooks.unregister_hook("stage_skipped", hook)

            hook.assert_called_once()
            content = log_file.read_text()
            assert "Workflow event: stage_skipped" in content

            for handler in logging.getLogger(LOGGER_NAME).handlers:
                handler.close()

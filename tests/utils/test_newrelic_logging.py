"""Tests for New Relic logging integration."""

from unittest.mock import patch

from src.utils.newrelic_logging import newrelic_error_processor


class TestNewRelicErrorProcessor:
    """Test the New Relic error processor."""

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_error_level_triggers_newrelic(self, mock_notice_error):
        """Error level logs are noticed and the event passes through unchanged."""
        event_dict = {
            "message": "Failed to store Linear webhook",
            "logger": "src.ingest.gatekeeper.webhook_handlers",
            "owner_id": "owner-1",
        }

        result = newrelic_error_processor(None, "error", event_dict)

        mock_notice_error.assert_called_once()
        assert result is event_dict

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_critical_level_triggers_newrelic(self, mock_notice_error):
        newrelic_error_processor(None, "critical", {"message": "Critical error"})

        mock_notice_error.assert_called_once()

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_warning_level_does_not_trigger_newrelic(self, mock_notice_error):
        """Rejected webhooks log at warning and must not page anyone."""
        newrelic_error_processor(None, "warning", {"message": "Rejected Linear webhook"})

        mock_notice_error.assert_not_called()

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_info_level_does_not_trigger_newrelic(self, mock_notice_error):
        newrelic_error_processor(None, "info", {"message": "Info message"})

        mock_notice_error.assert_not_called()

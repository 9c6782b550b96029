"""Tests for copilot_client module."""
from unittest.mock import patch, MagicMock

from webapp_eval.copilot_client import create_client
from webapp_eval.models.config import Config


class TestCreateClient:
	"""Tests for create_client factory function."""

	@patch("webapp_eval.copilot_client.CopilotClient")
	def test_external_server_mode(self, mock_client_class: MagicMock):
		"""Client uses cli_url when set (external server mode)."""
		cfg = Config(COPILOT_CLI_URL="localhost:8080", LOG_LEVEL="debug")

		create_client(cfg)

		mock_client_class.assert_called_once_with({
		    "cli_url": "localhost:8080",
		    "log_level": "debug",
		})

	@patch("webapp_eval.copilot_client.CopilotClient")
	def test_external_server_ignores_token(self,
	                                       mock_client_class: MagicMock):
		cfg = Config(COPILOT_CLI_URL="localhost:8080",
		             GITHUB_TOKEN="ghp_test123",
		             LOG_LEVEL="info")

		create_client(cfg)

		mock_client_class.assert_called_once_with({
		    "cli_url": "localhost:8080",
		    "log_level": "info",
		})

	@patch("webapp_eval.copilot_client.CopilotClient")
	def test_native_stdio_mode_no_token(self, mock_client_class: MagicMock,
	                                    monkeypatch):
		"""Client uses stdio mode when cli_url is unset."""
		monkeypatch.delenv("GITHUB_TOKEN", raising=False)
		monkeypatch.delenv("COPILOT_CLI_URL", raising=False)
		cfg = Config(LOG_LEVEL="info")

		create_client(cfg)

		mock_client_class.assert_called_once_with({
		    "log_level": "info",
		})

	@patch("webapp_eval.copilot_client.CopilotClient")
	def test_native_stdio_mode_with_token(self, mock_client_class: MagicMock,
	                                      monkeypatch):
		"""Client passes github_token in native mode for auth."""
		monkeypatch.delenv("COPILOT_CLI_URL", raising=False)
		cfg = Config(GITHUB_TOKEN="ghp_test123", LOG_LEVEL="warning")

		create_client(cfg)

		mock_client_class.assert_called_once_with({
		    "log_level": "warn",
		    "github_token": "ghp_test123",
		})

	@patch("webapp_eval.copilot_client.CopilotClient")
	def test_log_level_is_normalized(self, mock_client_class: MagicMock,
	                                 monkeypatch):
		monkeypatch.delenv("GITHUB_TOKEN", raising=False)
		monkeypatch.delenv("COPILOT_CLI_URL", raising=False)
		cfg = Config(LOG_LEVEL="CRITICAL")

		create_client(cfg)

		mock_client_class.assert_called_once_with({"log_level": "error"})

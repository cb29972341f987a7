from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from smee_relay.common.config import BackoffStrategy
from smee_relay.relay import app as app_module
from smee_relay.relay.app import (
    cli,
    load_config_from_file,
    run_relay,
    setup_app,
)


class TestRelayApp:

    def test_load_config_from_file(self, tmp_path, relay_config):
        """Test that load_config_from_file loads configuration from a YAML file."""
        config_file = tmp_path / "config.yaml"
        config_dict = relay_config.model_dump(mode="json")

        with open(config_file, "w") as f:
            yaml.dump(config_dict, f)

        loaded_config = load_config_from_file(str(config_file))

        assert loaded_config.source_url == relay_config.source_url
        assert loaded_config.target_url == relay_config.target_url
        assert loaded_config.secret == relay_config.secret
        assert loaded_config.reconnect.delay == 0.5

    def test_load_config_overrides_win(self, tmp_path, relay_config):
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(relay_config.model_dump(mode="json"), f)

        loaded_config = load_config_from_file(str(config_file), target_url="http://localhost:9000/")

        assert loaded_config.target_url == "http://localhost:9000/"

    def test_load_config_from_file_not_found(self):
        """Test that load_config_from_file raises an exception when the file is not found."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config_from_file("/path/to/nonexistent/config.yaml")

    def test_setup_app(self, relay_config):
        """Test that setup_app wires the supervisor, forwarder and relay loop."""
        with patch("smee_relay.relay.app.StreamSupervisor") as mock_supervisor_class, patch(
            "smee_relay.relay.app.WebhookForwarder"
        ) as mock_forwarder_class, patch(
            "smee_relay.relay.app.RelayLoop"
        ) as mock_relay_class, patch(
            "smee_relay.relay.app.logger"
        ):
            setup_app(relay_config)

            mock_supervisor_class.assert_called_once_with(
                source_url=relay_config.source_url,
                policy=relay_config.reconnect,
                connect_timeout=relay_config.timeout,
            )
            mock_forwarder_class.assert_called_once_with(
                target_url=relay_config.target_url,
                timeout=relay_config.timeout,
                verify_ssl=True,
            )
            mock_relay_class.assert_called_once_with(
                supervisor=mock_supervisor_class.return_value,
                forwarder=mock_forwarder_class.return_value,
                secret=relay_config.secret,
            )
            assert app_module._app_config == relay_config

    def test_setup_app_requires_urls(self, relay_config):
        relay_config.source_url = None
        with patch("smee_relay.relay.app.logger"):
            with pytest.raises(ValueError, match="--url parameter is required"):
                setup_app(relay_config)

    @pytest.mark.asyncio
    async def test_run_relay(self, relay_config):
        """Test that run_relay checks the target, runs the loop and reports liveness."""
        relay_config.metrics.enabled = True
        mock_relay = MagicMock()
        mock_relay.forwarder.check_reachable = AsyncMock(return_value=True)
        mock_relay.run = AsyncMock()

        with patch(
            "smee_relay.relay.app.start_metrics_server"
        ) as mock_start_metrics, patch(
            "smee_relay.relay.app.metrics.up"
        ) as mock_up, patch(
            "smee_relay.relay.app.logger"
        ), patch(
            "smee_relay.relay.app._app_config", relay_config
        ), patch(
            "smee_relay.relay.app._relay", mock_relay
        ):
            mock_labels = MagicMock()
            mock_up.labels.return_value = mock_labels

            await run_relay()

            mock_start_metrics.assert_called_once_with(
                relay_config.metrics.port, relay_config.metrics.host
            )
            mock_relay.forwarder.check_reachable.assert_awaited_once()
            mock_relay.run.assert_awaited_once()
            mock_up.labels.assert_any_call(component="relay")
            mock_labels.set.assert_any_call(1)
            mock_labels.set.assert_any_call(0)


class TestCli:

    def test_start_command(self, monkeypatch):
        """Test that the start command builds the config from its options."""
        monkeypatch.delenv("SMEE_RELAY_SECRET", raising=False)
        with patch("smee_relay.relay.app.setup_app") as mock_setup, patch(
            "smee_relay.relay.app.asyncio.run"
        ) as mock_run, patch("smee_relay.relay.app.run_relay", MagicMock()):
            result = CliRunner().invoke(
                cli,
                [
                    "--debug",
                    "--no-color",
                    "start",
                    "--url", "https://smee.io/abc",
                    "--target", "https://localhost:8443/hook",
                    "--secret", "s3cr3t",
                    "--timeout", "30",
                    "--self-signed-certificate",
                    "--reconnect-delay", "2",
                    "--backoff", "exponential",
                ],
            )

        assert result.exit_code == 0, result.output
        config = mock_setup.call_args.args[0]
        assert config.source_url == "https://smee.io/abc"
        assert config.target_url == "https://localhost:8443/hook"
        assert config.secret == "s3cr3t"
        assert config.timeout == 30
        assert config.self_signed_certificate is True
        assert config.log_level == "DEBUG"
        assert config.colorize is False
        assert config.reconnect.delay == 2
        assert config.reconnect.strategy == BackoffStrategy.EXPONENTIAL
        assert config.metrics.enabled is False
        mock_run.assert_called_once()

    def test_start_with_metrics_port(self):
        with patch("smee_relay.relay.app.setup_app") as mock_setup, patch(
            "smee_relay.relay.app.asyncio.run"
        ), patch("smee_relay.relay.app.run_relay", MagicMock()):
            result = CliRunner().invoke(
                cli,
                ["start", "--url", "https://smee.io/abc", "--target", "http://localhost/", "--metrics-port", "9100"],
            )

        assert result.exit_code == 0, result.output
        config = mock_setup.call_args.args[0]
        assert config.metrics.enabled is True
        assert config.metrics.port == 9100

    def test_start_requires_url(self, monkeypatch):
        """Test that a missing URL exits non-zero before anything connects."""
        monkeypatch.delenv("SMEE_RELAY_SOURCE_URL", raising=False)
        with patch("smee_relay.relay.app.asyncio.run") as mock_run, patch(
            "smee_relay.relay.app.logger"
        ) as mock_logger:
            result = CliRunner().invoke(cli, ["start", "--target", "http://localhost/"])

        assert result.exit_code == 1
        mock_run.assert_not_called()
        assert "--url parameter is required" in mock_logger.error.call_args.args[0]

    def test_start_requires_target(self, monkeypatch):
        monkeypatch.delenv("SMEE_RELAY_TARGET_URL", raising=False)
        with patch("smee_relay.relay.app.asyncio.run") as mock_run, patch(
            "smee_relay.relay.app.logger"
        ) as mock_logger:
            result = CliRunner().invoke(cli, ["start", "--url", "https://smee.io/abc"])

        assert result.exit_code == 1
        mock_run.assert_not_called()
        assert "--target parameter is required" in mock_logger.error.call_args.args[0]

    def test_fatal_error_exits_non_zero(self):
        with patch("smee_relay.relay.app.setup_app"), patch(
            "smee_relay.relay.app.run_relay", MagicMock()
        ), patch(
            "smee_relay.relay.app.asyncio.run", side_effect=RuntimeError("no destination channel given")
        ), patch("smee_relay.relay.app.logger"):
            result = CliRunner().invoke(
                cli, ["start", "--url", "https://smee.io/abc", "--target", "http://localhost/"]
            )

        assert result.exit_code == 1

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "smee-relay" in result.output

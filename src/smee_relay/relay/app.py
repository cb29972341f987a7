import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml
from loguru import logger

from smee_relay import __version__
from smee_relay.common.config import BackoffStrategy, RelayConfig
from smee_relay.common.metrics import metrics, start_metrics_server
from smee_relay.forwarder.client import WebhookForwarder
from smee_relay.relay.loop import RelayLoop
from smee_relay.stream.supervisor import StreamSupervisor

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"


_app_config: Optional[RelayConfig] = None
_relay: Optional[RelayLoop] = None


def load_config_from_file(config_path: str, **overrides: Any) -> RelayConfig:
    """Load configuration from a YAML file, letting ``overrides`` win."""
    file_path = Path(config_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(file_path, "r") as f:
        config_data = yaml.safe_load(f) or {}

    config_data.update(overrides)
    return RelayConfig(**config_data)


def setup_app(config: RelayConfig):
    """Initialize the relay with the given config."""
    global _app_config, _relay

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=config.log_level,
        format=LOG_FORMAT,
        colorize=config.colorize,
    )

    config.validate_required()

    supervisor = StreamSupervisor(
        source_url=config.source_url,
        policy=config.reconnect,
        connect_timeout=config.timeout,
    )
    forwarder = WebhookForwarder(
        target_url=config.target_url,
        timeout=config.timeout,
        verify_ssl=not config.self_signed_certificate,
    )
    _relay = RelayLoop(
        supervisor=supervisor,
        forwarder=forwarder,
        secret=config.secret,
    )

    _app_config = config

    logger.info("Smee relay initialized")
    if not config.secret:
        logger.info("No secret configured, signatures will not be verified")
    if config.self_signed_certificate:
        logger.warning(f"TLS certificate verification disabled for {config.target_url}")


async def run_relay():
    """Run the relay until the process is stopped or a fatal error occurs."""
    global _app_config, _relay

    if _app_config.metrics.enabled:
        start_metrics_server(_app_config.metrics.port, _app_config.metrics.host)
        logger.info(f"Metrics server started on {_app_config.metrics.host}:{_app_config.metrics.port}")

    metrics.up.labels(component="relay").set(1)
    try:
        await _relay.forwarder.check_reachable()
        await _relay.run()
    finally:
        metrics.up.labels(component="relay").set(0)
        logger.info("Smee relay stopped")


@click.group()
@click.version_option(__version__, prog_name="smee-relay")
@click.option("--debug", is_flag=True, help="Display debug output")
@click.option("--no-color", is_flag=True, help="No print color")
@click.pass_context
def cli(ctx, debug: bool, no_color: bool):
    """smee.io client relaying webhook events to a local target"""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["no_color"] = no_color


@cli.command("start")
@click.option("--url", help="URL of the webhook proxy service, for example https://smee.io/VyOocXe0HCKwlSj")
@click.option("--target", help="Full URL (including protocol and path) of the target service the events are forwarded to")
@click.option("--secret", help="Secret to be used for HMAC-SHA1 secure hash calculation")
@click.option("--timeout", type=float, help="Seconds to wait when accessing the URL and the target (default 120)")
@click.option(
    "--self-signed-certificate",
    is_flag=True,
    help="Disable the TLS certificate check only on target",
)
@click.option("--reconnect-delay", type=float, help="Seconds to wait before reconnecting to the URL")
@click.option(
    "--backoff",
    type=click.Choice([s.value for s in BackoffStrategy]),
    help="Reconnect backoff strategy",
)
@click.option("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
@click.option("--config", "-c", help="Path to a YAML configuration file")
@click.pass_context
def start(
    ctx,
    url: Optional[str],
    target: Optional[str],
    secret: Optional[str],
    timeout: Optional[float],
    self_signed_certificate: bool,
    reconnect_delay: Optional[float],
    backoff: Optional[str],
    metrics_port: Optional[int],
    config: Optional[str],
):
    """Start relaying events."""
    overrides: Dict[str, Any] = {
        key: value
        for key, value in {
            "source_url": url,
            "target_url": target,
            "secret": secret,
            "timeout": timeout,
            "self_signed_certificate": self_signed_certificate or None,
        }.items()
        if value is not None
    }
    if ctx.obj.get("debug"):
        overrides["log_level"] = "DEBUG"
    if ctx.obj.get("no_color"):
        overrides["colorize"] = False

    try:
        config_obj = (
            load_config_from_file(config, **overrides)
            if config
            else RelayConfig(**overrides)
        )
        if reconnect_delay is not None or backoff is not None:
            config_obj.reconnect = config_obj.reconnect.model_copy(
                update={
                    key: value
                    for key, value in {
                        "delay": reconnect_delay,
                        "strategy": BackoffStrategy(backoff) if backoff else None,
                    }.items()
                    if value is not None
                }
            )
        if metrics_port is not None:
            config_obj.metrics = config_obj.metrics.model_copy(
                update={"enabled": True, "port": metrics_port}
            )

        setup_app(config_obj)
        asyncio.run(run_relay())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception as e:
        logger.error(f"Failed to run smee relay: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()

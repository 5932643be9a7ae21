"""Startup-time summary of the effective configuration."""

from pathlib import Path

from paydash.common.config import CommonSettings
from paydash.common.logging import logger


REDACTED_MARKERS = ("secret", "password", "dsn")


def redacted_settings(config: CommonSettings) -> dict[str, object]:
    """Dump settings with secret-like fields masked and unset ones marked."""

    summary: dict[str, object] = {}
    for name, value in config.model_dump().items():
        if value in ("", None):
            summary[name] = "<unset>"
        elif any(marker in name for marker in REDACTED_MARKERS):
            summary[name] = "<redacted>"
        else:
            summary[name] = value
    return summary


def log_startup_config(config: CommonSettings) -> None:
    """Log the effective config and flag the problems that block signed calls."""

    logger.info("startup_config=%s", redacted_settings(config))
    if not config.gateway_client_id or not config.gateway_client_secret:
        logger.warning("gateway_credentials_missing")
    if not Path(config.signing_private_key_path).is_file():
        logger.warning("signing_key_missing path=%s", config.signing_private_key_path)

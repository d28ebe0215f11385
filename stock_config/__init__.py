"""
stock_config -- single public entrypoint for stock ledger settings.

Responsibility:
    ``get_active_settings()`` is the ONLY way to obtain settings at runtime.
    No other component reads configuration files or environment variables.

Architecture position:
    Configuration.  Sits above ``stock_kernel`` and below
    ``stock_services`` / ``stock_modules``.  The kernel MUST NEVER import
    from ``stock_config``; settings are passed in explicitly.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ConfigurationError`` -- unknown keys or invalid values.

Audit relevance:
    Every call emits a ``STOCK_CONFIG_TRACE`` log entry with the source
    path and a checksum of the effective settings.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from stock_config.loader import (
    apply_env_overrides,
    compute_checksum,
    load_yaml_file,
    parse_settings,
    resolve_config_path,
)
from stock_config.schema import LedgerSettings

_logger = logging.getLogger("stock_kernel.config")

__all__ = ["LedgerSettings", "get_active_settings"]


def get_active_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """Load, override and validate the active settings.

    Args:
        path: Settings file.  Defaults to $STOCK_LEDGER_CONFIG, then the
            packaged defaults.yaml.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    source = resolve_config_path(Path(path) if path is not None else None, environ)
    effective = apply_env_overrides(load_yaml_file(source), environ)
    settings = parse_settings(effective)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(effective),
            "dialect": settings.database_url.split(":", 1)[0],
            "transaction_timeout_seconds": settings.transaction_timeout_seconds,
            "transaction_number_prefix": settings.transaction_number_prefix,
        },
    )
    return settings

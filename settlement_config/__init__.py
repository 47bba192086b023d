"""
settlement_config -- public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the one way runtime code obtains settlement
    configuration: default articles, default tax rates, number formats,
    the materiality threshold and the default payment day.  The packaged
    ``sets/default.yaml`` is used unless ``SETTLEMENT_CONFIG_PATH`` or an
    explicit path points elsewhere.

Failure modes:
    - ``FileNotFoundError`` -- the configured path does not exist.
    - ``KeyError`` / ``ValueError`` -- the file fails schema parsing.

Audit relevance:
    Every load emits a ``settlement_config_loaded`` log entry carrying the
    config id, version and checksum, tying generated credit notes to the
    exact configuration that produced them.
"""

from __future__ import annotations

import os
from pathlib import Path

from settlement_config.loader import load_engine_config
from settlement_config.schema import ArticleDefault, EngineConfig, NumberFormatDef
from settlement_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "SETTLEMENT_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """Load the active engine configuration.

    Resolution order: explicit ``path``, then ``SETTLEMENT_CONFIG_PATH``,
    then the packaged default set.  Not cached; callers hold the returned
    config for the duration of a request.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_engine_config(resolved)
    logger.info(
        "settlement_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(resolved),
        },
    )
    return config


__all__ = [
    "ArticleDefault",
    "EngineConfig",
    "NumberFormatDef",
    "get_active_config",
]

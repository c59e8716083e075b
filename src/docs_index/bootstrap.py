"""Process-level observability setup for applications embedding the index."""

from __future__ import annotations

import logging

from docs_index.config import IndexSettings
from docs_index.observability import configure_logging, init_metrics, init_tracing


logger = logging.getLogger(__name__)


def configure_observability(
    settings: IndexSettings | None = None,
    *,
    service_name: str = "docs-index",
    logger_levels: dict[str, str] | None = None,
) -> IndexSettings:
    """Install logging, metrics and tracing from ``settings``.

    Call once at process start, before creating an ``IndexManager``. Returns
    the settings that were applied so callers can reuse them.
    """

    active = settings or IndexSettings()
    configure_logging(level=active.log_level, json_output=active.log_json, logger_levels=logger_levels)
    init_metrics(service_name=service_name)
    init_tracing(service_name=service_name)
    logger.info(
        "Observability configured (level=%s, json=%s, persistent=%s)",
        active.log_level,
        active.log_json,
        active.is_persistent(),
    )
    return active

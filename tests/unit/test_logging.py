from __future__ import annotations

import logging

from bibsources.logging import configure_logging, get_logger


def test_configure_logging_levels():
    configure_logging("debug", json=True)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging("not-a-level")
    assert logging.getLogger().level == logging.INFO


def test_get_logger_binds_initial_values():
    logger = get_logger("bibsources.tests", plugin_id="ads")
    assert logger._context == {"plugin_id": "ads"}

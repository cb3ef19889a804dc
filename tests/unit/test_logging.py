"""
Unit tests -- package logger hierarchy.
"""
import logging

from tracklens.core.logging import ROOT_LOGGER, get_logger


def test_outside_names_nest_under_package():
    assert get_logger("pipelines.seed.seed_data").name == "tracklens.pipelines.seed.seed_data"
    assert get_logger("tracklens.db.repository").name == "tracklens.db.repository"


def test_single_package_handler():
    get_logger("tracklens.a")
    get_logger("tracklens.b")
    assert len(logging.getLogger(ROOT_LOGGER).handlers) == 1


def test_records_reach_caplog(caplog):
    logger = get_logger("tracklens.pipeline.orchestrator")
    with caplog.at_level(logging.INFO, logger=ROOT_LOGGER):
        logger.info("Query ok | kind=fields")
    assert "Query ok | kind=fields" in caplog.text

import json
import logging

from qserve.utils import log_event, setup_logging


def test_setup_logging_json(capsys):
    setup_logging(level="INFO", json_format=True)
    logger = logging.getLogger("test")
    logger.info("Test message")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["level"] == "INFO"
    assert record["logger"] == "test"
    assert record["message"] == "Test message"


def test_setup_logging_text(capsys):
    setup_logging(level="DEBUG", json_format=False)
    logger = logging.getLogger("test")
    logger.debug("Debug message")

    assert "test - DEBUG - Debug message" in capsys.readouterr().err


def test_log_event_fields_in_json(capsys):
    setup_logging(level="INFO", json_format=True)
    log_event("search", {"query": "fox", "result_size": 3})

    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["logger"] == "qserve.events"
    assert record["event_type"] == "search"
    assert record["query"] == "fox"
    assert record["result_size"] == 3


def test_log_event(caplog):
    with caplog.at_level(logging.INFO, logger="qserve.events"):
        log_event("test_event", {"key": "value", "count": 42})
    assert caplog.records[-1].event == {"event_type": "test_event", "key": "value", "count": 42}

"""NDJSON formatting and logging setup."""

import json
import logging

from gallery_api.cluster.worker import QueueRelayHandler
from gallery_api.utils.logger import JsonLinesFormatter, request_id_var, setup_logging


def make_record(**extra):
    record = logging.LogRecord("gallery_api", logging.INFO, __file__, 1, "Album created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_lines_drop_sensitive_fields():
    token = request_id_var.set("rid-1")
    try:
        line = JsonLinesFormatter().format(
            make_record(event="albums", album_id="a1", email="x@example.com", password="hunter2")
        )
    finally:
        request_id_var.reset(token)

    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["rid"] == "rid-1"
    assert payload["event"] == "albums"
    assert payload["msg"] == "Album created"
    assert payload["ctx"] == {"album_id": "a1"}
    assert payload["ts"].endswith("Z")


def test_worker_logging_only_relays():
    root = logging.getLogger()
    previous = list(root.handlers), root.level
    relay = QueueRelayHandler(1, queue=None)
    try:
        setup_logging(extra_handlers=[relay], local_output=False)
        assert root.handlers == [relay]
    finally:
        root.handlers[:] = previous[0]
        root.setLevel(previous[1])

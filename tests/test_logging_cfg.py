"""Tests for structured logging helpers."""

import json
import logging
from unittest.mock import MagicMock

from mmbot.execution.execution_gateway import ExecutionGateway
from mmbot.execution.order_manager import OrderManager
from mmbot.infra.logging_cfg import (
    AsyncQueueHandler,
    JsonFormatter,
    ThrottledFilter,
    build_logger,
    log_event,
)


def _record(msg, level=logging.WARNING):
    return logging.LogRecord("mmbot", level, __file__, 1, msg, None, None)


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []
        self.closed = False

    def emit(self, record):
        self.records.append(record)

    def close(self):
        self.closed = True
        super().close()


class TestThrottledFilter:
    def test_repeats_suppressed_within_cooldown(self):
        now = [0.0]
        f = ThrottledFilter(cooldown_sec=30, clock=lambda: now[0])
        msg = json.dumps({"event": "unexpected_order", "pair": "ILMTUSDT"})

        assert f.filter(_record(msg)) is True
        now[0] = 10
        assert f.filter(_record(msg)) is False
        now[0] = 31
        assert f.filter(_record(msg)) is True

    def test_keyed_per_pair(self):
        f = ThrottledFilter(cooldown_sec=30, clock=lambda: 0.0)
        assert f.filter(_record(json.dumps({"event": "price_unavailable", "pair": "A"})))
        assert f.filter(_record(json.dumps({"event": "price_unavailable", "pair": "B"})))
        assert not f.filter(_record(json.dumps({"event": "price_unavailable", "pair": "A"})))

    def test_other_events_and_plain_text_pass(self):
        f = ThrottledFilter(cooldown_sec=30, clock=lambda: 0.0)
        placed = json.dumps({"event": "order_placed", "pair": "A"})
        assert f.filter(_record(placed))
        assert f.filter(_record(placed))
        assert f.filter(_record("Shutdown complete"))
        assert f.filter(_record("[1, 2]"))


def test_json_formatter():
    out = json.loads(JsonFormatter().format(_record('{"event": "x"}')))
    assert out["level"] == "WARNING"
    assert out["name"] == "mmbot"
    assert out["msg"] == '{"event": "x"}'
    assert "ts_iso" in out


def test_log_event_payload():
    logger = MagicMock()
    log_event(logger, "order_placed", level=logging.INFO, pair="ILMTUSDT", price=None)
    level, msg = logger.log.call_args.args
    assert level == logging.INFO
    assert json.loads(msg) == {"event": "order_placed", "pair": "ILMTUSDT", "price": None}


def test_component_events_go_through_log_event():
    """A component's default event logger writes the same JSON payload to the mmbot logger."""
    logger = logging.getLogger("mmbot")
    handler = ListHandler()
    logger.addHandler(handler)
    try:
        execution = ExecutionGateway("ILMTUSDT", MagicMock(), OrderManager())
        execution._log_event("cancel_error", level=logging.WARNING, order_id="1", level_index=0)
    finally:
        logger.removeHandler(handler)

    (record,) = [r for r in handler.records if "cancel_error" in r.getMessage()]
    assert record.levelno == logging.WARNING
    assert json.loads(record.getMessage()) == {
        "event": "cancel_error",
        "pair": "ILMTUSDT",
        "order_id": "1",
        "level_index": 0,
    }


def test_async_queue_handler_drains_on_close():
    target = ListHandler()
    handler = AsyncQueueHandler(target, max_queue_size=100)
    for i in range(5):
        handler.emit(_record(f"m{i}"))

    handler.close()
    handler.close()

    assert [r.getMessage() for r in target.records] == ["m0", "m1", "m2", "m3", "m4"]
    assert target.closed
    assert handler.dropped == 0


def test_build_logger_is_idempotent(tmp_path):
    path = tmp_path / "engine.log"
    logger = build_logger("mmbot.test_build", level="debug", file_path=str(path), async_file=False)
    try:
        count = len(logger.handlers)
        again = build_logger("mmbot.test_build", level=logging.WARNING, file_path=str(path), async_file=False)

        assert again is logger
        assert len(again.handlers) == count == 2
        assert logger.level == logging.WARNING
        assert logger.propagate is False

        logger.warning(json.dumps({"event": "written"}))
        for h in logger.handlers:
            h.flush()
        line = path.read_text().strip().splitlines()[-1]
        assert json.loads(json.loads(line)["msg"]) == {"event": "written"}
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)

import json

import pytest

from core.obs import JsonStdoutLogger, Span, bind_log_context, current_log_context, redact, with_span


class RecordingLogger:
    def __init__(self):
        self.records = []

    def info(self, event, **fields):
        self.records.append(("info", event, {**current_log_context(), **fields}))

    def warn(self, event, **fields):
        self.records.append(("warn", event, {**current_log_context(), **fields}))

    def error(self, event, **fields):
        self.records.append(("error", event, {**current_log_context(), **fields}))


def test_json_logger_merges_bound_context(capsys, tmp_path):
    log_file = tmp_path / "out" / "svc.log"
    logger = JsonStdoutLogger(service="svc", log_path=log_file)
    with bind_log_context(run_id="r1", stage="outer"):
        logger.info("pipeline.progress", stage="inner", step=2)
    line = capsys.readouterr().out.strip()
    rec = json.loads(line)
    assert rec["event"] == "pipeline.progress"
    assert rec["run_id"] == "r1"
    assert rec["stage"] == "inner"
    assert log_file.read_text(encoding="utf-8").strip() == line
    assert current_log_context() == {}


def test_json_logger_level_threshold(monkeypatch, capsys):
    from core import config as cfg

    monkeypatch.setenv("OBS_LOG_LEVEL", "warn")
    cfg._config_adapter.cache_clear()
    logger = JsonStdoutLogger(service="svc")
    logger.info("dropped")
    logger.warn("kept")
    logger.error("also.kept")
    captured = capsys.readouterr()
    assert [json.loads(line)["event"] for line in captured.out.splitlines()] == ["kept"]
    assert json.loads(captured.err)["level"] == "error"


def test_span_binds_name_for_nested_records():
    logger = RecordingLogger()
    with Span(logger, "stage.summary", {"model": "m"}):
        logger.info("agent.invoke.start")
    events = [(level, event) for level, event, _ in logger.records]
    assert events == [
        ("info", "stage.summary.start"),
        ("info", "agent.invoke.start"),
        ("info", "stage.summary.end"),
    ]
    assert logger.records[1][2]["span"] == "stage.summary"
    assert "span" not in logger.records[2][2]
    assert logger.records[2][2]["duration_ms"] >= 0


def test_span_logs_error_and_reraises():
    logger = RecordingLogger()
    with pytest.raises(KeyError):
        with Span(logger, "stage.x"):
            raise KeyError("boom")
    level, event, fields = logger.records[-1]
    assert (level, event) == ("error", "stage.x.error")
    assert fields["error_type"] == "KeyError"


@pytest.mark.asyncio
async def test_with_span_uses_instance_logger():
    class Client:
        def __init__(self):
            self._logger = RecordingLogger()

        @with_span("llm.chat", fields={"provider": "fake"}, fields_fn=lambda self, model: {"model": model})
        async def chat(self, model):
            return "ok"

    client = Client()
    assert await client.chat(model="m1") == "ok"
    start = client._logger.records[0]
    assert start[1] == "llm.chat.start"
    assert start[2]["provider"] == "fake"
    assert start[2]["model"] == "m1"


def test_redact_masks_every_secret():
    assert redact("key sk-1 and sk-2", "sk-1", None, "sk-2") == "key *** and ***"
    assert redact(None, "x") is None

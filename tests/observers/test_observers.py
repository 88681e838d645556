import io
import json
import logging

from ocne.observers.console import ConsoleObserver
from ocne.observers.dispatcher import EventBus
from ocne.observers.events import ClusterDeleted, LifecycleSummary, new_ctx
from ocne.observers.jsonfile import JsonFileObserver
from ocne.observers.logger import LoggerObserver


def _deleted():
    return ClusterDeleted(cluster_name="demo", namespace="ocne", **new_ctx("management", "/tmp/kc", run_id="r1"))


def test_json_file_observer_appends(tmp_path):
    ob = JsonFileObserver(tmp_path / "logs" / "r1.jsonl")

    ob.notify(_deleted())
    ob.notify(LifecycleSummary(cluster_name="demo", operation="delete", status="OK", **new_ctx("workload", None)))

    events = [json.loads(line) for line in ob.path.read_text().splitlines()]
    assert [e["type"] for e in events] == ["ClusterDeleted", "LifecycleSummary"]
    assert events[0]["run_id"] == "r1"
    assert events[1]["error"] is None


def test_console_observer_skips_context():
    out = io.StringIO()

    ConsoleObserver(out).notify(_deleted())

    line = out.getvalue()
    assert "ClusterDeleted env=management {cluster_name=demo, namespace=ocne}" in line
    assert "run_id" not in line


def test_logger_observer(caplog):
    logger = logging.getLogger("ocne.test-events")
    with caplog.at_level(logging.DEBUG, logger="ocne.test-events"):
        LoggerObserver(logger).notify(_deleted())

    assert "[EVENT] ClusterDeleted" in caplog.text
    assert "cluster_name=demo" in caplog.text


def test_bus_keeps_going_when_an_observer_fails():
    seen = []

    class Broken:
        def notify(self, event):
            raise RuntimeError("disk full")

    class Good:
        def notify(self, event):
            seen.append(event)

    bus = EventBus(observers=[Broken(), Good()])
    bus.emit(_deleted())

    assert len(seen) == 1

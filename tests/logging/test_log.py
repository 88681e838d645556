import logging
import os

import pytest

from ocne.logging.log import init_logging, prune_logs


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    logger = logging.getLogger("ocne-test")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()


def _console(logger):
    return [h for h in logger.handlers if not isinstance(h, logging.FileHandler)][0]


def test_init_logging_writes_trace_file(tmp_path):
    logger, run_id, path = init_logging(base_dir=tmp_path, name="ocne-test")

    logger.debug("hello from the trace")
    for h in logger.handlers:
        h.flush()

    assert path.parent == tmp_path
    assert run_id in path.name
    assert "hello from the trace" in path.read_text()
    assert logger.propagate is False
    assert _console(logger).level == logging.INFO


@pytest.mark.parametrize("verbose,quiet,level", [(True, False, logging.DEBUG), (False, True, logging.WARNING)])
def test_console_level(tmp_path, verbose, quiet, level):
    logger, _, _ = init_logging(base_dir=tmp_path, name="ocne-test", verbose=verbose, quiet=quiet)

    assert _console(logger).level == level


def test_prune_keeps_newest(tmp_path):
    for i in range(5):
        p = tmp_path / f"ocne-2026-{i}.log"
        p.write_text("x")
        os.utime(p, (1000 + i, 1000 + i))
    (tmp_path / "other.log").write_text("x")

    removed = prune_logs(tmp_path, "ocne", keep=2)

    assert sorted(p.name for p in removed) == ["ocne-2026-0.log", "ocne-2026-1.log", "ocne-2026-2.log"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["ocne-2026-3.log", "ocne-2026-4.log", "other.log"]

import io

from ocne.waiters.waiter import ProgressRenderer, Waiter, wait_for, wait_for_serial


def _ok(arg):
    return arg * 2


def _boom(arg):
    raise RuntimeError(f"{arg} never came up")


def test_wait_for_runs_all_and_reports_failure():
    stream = io.StringIO()
    waiters = [Waiter("core", _ok, 1), Waiter("bootstrap", _boom, "kubeadm"), Waiter("olvm", _ok, 3)]

    failed = wait_for(waiters, ProgressRenderer(stream=stream).start())

    assert failed is True
    assert [w.result for w in waiters] == [2, None, 6]
    assert str(waiters[1].error) == "kubeadm never came up"


def test_wait_for_success_renders_final_states():
    stream = io.StringIO()
    renderer = ProgressRenderer(stream=stream)
    renderer.start()

    failed = wait_for([Waiter("core", _ok, 1), Waiter("olvm", _ok, 2)], renderer)
    renderer.stop()

    assert failed is False
    out = stream.getvalue()
    assert "[ok] core" in out
    assert "[ok] olvm" in out


def test_quiet_renderer_writes_nothing():
    stream = io.StringIO()
    renderer = ProgressRenderer(stream=stream, quiet=True).start()

    wait_for([Waiter("core", _boom, "x")], renderer)
    renderer.stop()

    assert stream.getvalue() == ""
    assert renderer.finished[0].state == "failed"


def test_wait_for_serial_stops_on_error():
    calls = []

    def record(arg):
        calls.append(arg)
        if arg == 2:
            raise RuntimeError("two")

    waiters = [Waiter(str(i), record, i) for i in range(1, 4)]

    assert wait_for_serial(waiters, ProgressRenderer(stream=io.StringIO()), stop_on_error=True) is True
    assert calls == [1, 2]


def test_empty_wait_for():
    assert wait_for([]) is False

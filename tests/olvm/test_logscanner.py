import io

from ocne.olvm.logscanner import DEFAULT_TOLERATIONS, LogFollower, LogHandler, MessageDispatcher

TS = "2026-10-19T08:00:0{}Z"


def _error(i, text, extra="{}"):
    return "\t".join([TS.format(i % 10), "ERROR", "controller/olvmmachine.go:120", text, extra])


def _collect(tolerations=None):
    emitted = []
    return LogHandler(tolerations=tolerations, emit=emitted.append), emitted


def test_each_distinct_error_is_emitted_once():
    handler, emitted = _collect()
    dispatcher = MessageDispatcher(handler)
    texts = ["vm create failed", "no ip available", "vm create failed", "vm create failed", "no ip available"]
    for i, t in enumerate(texts):
        dispatcher.dispatch(_error(i, t) + "\n")
        dispatcher.dispatch("    goroutine 1 [running]:\n")
    dispatcher.flush()

    assert len(emitted) == 2
    assert emitted[0].startswith(_error(0, "vm create failed"))
    assert emitted[0].endswith("    goroutine 1 [running]:")
    assert handler.seen == {"vm create failed", "no ip available"}


def test_error_key_is_trimmed():
    handler, emitted = _collect()
    assert handler.handle([_error(0, "  boom  ")]) is True
    assert handler.handle([_error(1, "boom")]) is False
    assert len(emitted) == 1


def test_non_error_lines_are_ignored():
    handler, emitted = _collect()
    dispatcher = MessageDispatcher(handler)
    for line in ["2026-10-19T08:00:00Z\tINFO\tmain.go:1\tstarting\t{}", "random noise", ""]:
        dispatcher.dispatch(line)
    dispatcher.flush()

    assert emitted == []


def test_short_error_lines_are_ignored():
    handler, emitted = _collect()

    assert handler.handle(["2026-10-19T08:00:00Z\tERROR\tonly three"]) is False
    assert emitted == []


def test_tolerated_errors_are_dropped():
    handler, emitted = _collect(DEFAULT_TOLERATIONS)
    racy = _error(0, 'OLVMCluster.infrastructure.cluster.x-k8s.io \\"demo\\" not found')

    assert handler.handle([racy]) is False
    assert handler.handle([_error(1, "real problem")]) is True
    assert len(emitted) == 1


def test_continuation_lines_join_the_current_block():
    blocks = []

    class Recorder:
        def handle(self, lines):
            blocks.append(list(lines))

    dispatcher = MessageDispatcher(Recorder())
    for line in [_error(0, "a"), "  more", _error(1, "b"), "  trace", "  trace2"]:
        dispatcher.dispatch(line)
    assert len(blocks) == 1
    dispatcher.flush()

    assert [len(b) for b in blocks] == [2, 3]
    assert dispatcher.current == []


class FakeProc:
    def __init__(self, text):
        self.stdout = io.StringIO(text)
        self.killed = False

    def poll(self):
        return 0

    def kill(self):
        self.killed = True


class PopenRunner:
    def __init__(self, proc):
        self.proc = proc
        self.commands = []

    def popen(self, cmd, env=None):
        self.commands.append(cmd)
        return self.proc


def test_follower_streams_controller_logs():
    proc = FakeProc(_error(0, "first") + "\n" + _error(1, "first") + "\n" + _error(2, "second") + "\n")
    runner = PopenRunner(proc)
    follower = LogFollower("/tmp/kc", "cluster-api-provider-olvm", "olvm-capi-operator", runner=runner, tolerations=[])
    emitted = []
    follower.dispatcher.handler._emit = emitted.append

    with follower:
        follower._thread.join(timeout=5)

    assert runner.commands == [
        [
            "kubectl", "logs", "-f", "deployment/olvm-capi-operator",
            "-n", "cluster-api-provider-olvm", "--kubeconfig", "/tmp/kc",
        ]
    ]
    assert len(emitted) == 2

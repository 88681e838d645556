import pytest

from ocne.capi.move import move_cluster
from ocne.errors import OcneError


def test_move_cluster_command(runner):
    move_cluster("/tmp/eph", "/tmp/workload", "ocne", runner=runner)

    assert runner.commands == [
        ["clusterctl", "move", "--kubeconfig", "/tmp/eph", "--to-kubeconfig", "/tmp/workload", "-n", "ocne"]
    ]


def test_move_cluster_dry_run(runner):
    move_cluster("/a", "/b", "ocne", runner=runner, dry_run=True)
    assert runner.commands[0][-1] == "--dry-run"


def test_move_cluster_failure(runner):
    runner.returncode = 1
    runner.stderr = "no objects to move"

    with pytest.raises(OcneError, match="no objects to move"):
        move_cluster("/a", "/b", "ocne", runner=runner)

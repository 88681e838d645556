import stat
from pathlib import Path

from ocne.k8s.kubeconfig import default_kubeconfig, resolve_kubeconfig, write_kubeconfig


def test_flag_beats_environment():
    env = {"KUBECONFIG": "/env/kc", "TEST_KUBECONFIG": "/test/kc"}
    assert resolve_kubeconfig("/flag/kc", env) == ("/flag/kc", False)


def test_test_kubeconfig_beats_kubeconfig():
    env = {"KUBECONFIG": "/env/kc", "TEST_KUBECONFIG": "/test/kc"}
    assert resolve_kubeconfig("", env) == ("/test/kc", False)


def test_kubeconfig_env():
    assert resolve_kubeconfig("", {"KUBECONFIG": "/env/kc"}) == ("/env/kc", False)


def test_default_when_nothing_given():
    assert resolve_kubeconfig("", {}) == (str(default_kubeconfig()), True)


def test_write_kubeconfig_creates_parent_and_restricts_mode(tmp_path):
    target = tmp_path / "nested" / "kubeconfig.demo"

    out = write_kubeconfig(target, "apiVersion: v1\n")

    assert out == target
    assert Path(target).read_text() == "apiVersion: v1\n"
    assert stat.S_IMODE(target.stat().st_mode) == 0o700

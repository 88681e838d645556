import json
import subprocess
from pathlib import Path

import pytest
import yaml

from ocne.helm.cli_runner import HelmCliRunner
from ocne.helm.errors import HelmError


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


def test_install_builds_expected_argv(monkeypatch):
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None):
        calls.append(argv)
        return DummyCP(0)

    monkeypatch.setattr(subprocess, "run", fake_run)

    h = HelmCliRunner(kubeconfig="/tmp/kc")
    h.install("flannel", "kube-flannel", "/tmp/flannel-0.22.tgz", version="0.22.0", wait=True, timeout_seconds=300)

    argv = calls[0]
    assert argv[:3] == ["helm", "--kubeconfig", "/tmp/kc"]
    assert argv[3:7] == ["install", "flannel", "/tmp/flannel-0.22.tgz", "-n"]
    assert "--version" in argv and "0.22.0" in argv
    assert argv[-3:] == ["--wait", "--timeout", "300s"]


def test_values_inline_writes_temp_file(monkeypatch, tmp_path: Path):
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None):
        calls.append(argv)
        return DummyCP(0)

    monkeypatch.setattr(subprocess, "run", fake_run)

    class DummyTF:
        def __init__(self, *a, **kw):
            self.name = str(tmp_path / "inline.yaml")
        def __enter__(self): return self
        def __exit__(self, *a): return False
        def write(self, s):
            with open(self.name, "a") as fh:
                fh.write(s)
        def flush(self): pass

    import tempfile as _tempfile
    monkeypatch.setattr(_tempfile, "NamedTemporaryFile", lambda *a, **k: DummyTF())

    HelmCliRunner().upgrade("ui", "ocne-system", "/tmp/ui.tgz", values={"service": {"type": "NodePort"}})

    data = yaml.safe_load(Path(tmp_path / "inline.yaml").read_text())
    assert data == {"service": {"type": "NodePort"}}
    argv = calls[0]
    assert argv[:2] == ["helm", "upgrade"]
    assert "-f" in argv and str(tmp_path / "inline.yaml") in argv


def test_release_exists(monkeypatch):
    releases = [{"name": "flannel", "namespace": "kube-flannel"}, {"name": "ui", "namespace": "ocne-system"}]

    def fake_run(argv, check=False, text=False, capture_output=False, env=None):
        assert argv[-3:] == ["-o", "json", "-A"]
        return DummyCP(0, out=json.dumps(releases))

    monkeypatch.setattr(subprocess, "run", fake_run)

    h = HelmCliRunner()
    assert h.release_exists("ui", "ocne-system") is True
    assert h.release_exists("ui", "default") is False


def test_list_releases_in_namespace(monkeypatch):
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None):
        calls.append(argv)
        return DummyCP(0, out="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert HelmCliRunner().list_releases("ocne-system") == []
    assert calls[0][-2:] == ["-n", "ocne-system"]


def test_failure_raises_helm_error(monkeypatch):
    def fake_run(argv, check=False, text=False, capture_output=False, env=None):
        return DummyCP(1, err="Error: INSTALLATION FAILED")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(HelmError, match="INSTALLATION FAILED"):
        HelmCliRunner().uninstall("ui", "ocne-system")

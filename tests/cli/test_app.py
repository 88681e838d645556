import logging

import pytest
import yaml
from typer.testing import CliRunner

from ocne.cli.app import app
from ocne.config import loader

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("OCNE_DEFAULTS", raising=False)
    monkeypatch.setattr(loader, "DEFAULTS_FILE", tmp_path / "missing-defaults.yaml")
    yield
    # commands reconfigure the package logger; hand it back to pytest
    logger = logging.getLogger("ocne")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def _write_config(tmp_path, cc):
    path = tmp_path / "cluster.yaml"
    path.write_text(yaml.safe_dump(cc.model_dump(by_alias=True, exclude_none=True)))
    return path


def test_help_lists_commands():
    result = runner.invoke(app, ["cluster", "--help"])

    assert result.exit_code == 0
    for cmd in ("start", "stage", "delete", "template"):
        assert cmd in result.output


def test_template_prints_resources(tmp_path, olvm_config):
    path = _write_config(tmp_path, olvm_config())

    result = runner.invoke(app, ["cluster", "template", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert result.output.count("\nkind: OLVMMachineTemplate\n") == 2
    assert "\nkind: Cluster\n" in result.output


def test_template_reports_invalid_config(tmp_path, olvm_config):
    cc = olvm_config()
    cc.olvm.worker_machine.vm_template_name = ""
    path = _write_config(tmp_path, cc)

    result = runner.invoke(app, ["cluster", "template", "--config", str(path)])

    assert result.exit_code == 1
    assert "Error: The configuration parameter providers.olvm.workerMachine.vmTemplateName is required" in result.output


def test_image_upload_needs_disk_settings(tmp_path, olvm_config):
    path = _write_config(tmp_path, olvm_config())
    image = tmp_path / "ock.qcow2"
    image.write_bytes(b"QFI")

    result = runner.invoke(app, ["image", "upload", "--file", str(image), "--config", str(path)])

    assert result.exit_code == 1
    assert "diskName and storageDomainName" in result.output

import functools
import json

import pytest
from typer.testing import CliRunner

from cli import main as cli_main
from conftest import FakeManagementClient, ubuntu
from core.domain.models import ProbeStatus
from core.services.controller import Manager

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KRAUT_CHECKPOINT_DIR", str(tmp_path / "checkpoints"))
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("DNS_PROVIDER", raising=False)
    monkeypatch.delenv("DNS_PROVIDER_CREDENTIAL", raising=False)


def test_version():
    result = runner.invoke(cli_main.app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("krt ")


def test_ssh_fingerprint_prints_rows_and_errors(monkeypatch):
    monkeypatch.setattr(
        cli_main,
        "probe_host_fingerprints",
        lambda hosts: [("rt1", "SHA256:abc"), ("rt2", "failed to connect: rt2:22: refused")],
    )

    result = runner.invoke(cli_main.app, ["ssh", "fingerprint", "rt1", "rt2"])

    assert result.exit_code == 0
    assert "SHA256:abc" in result.output
    assert "refused" in result.output


def test_probe_uses_default_ports(monkeypatch):
    seen = {}

    def fake_probe_ports(host, ports, *, timeout):
        seen["ports"] = ports
        return {port: ProbeStatus.FILTERED for port in ports}

    monkeypatch.setattr(cli_main, "probe_ports", fake_probe_ports)

    result = runner.invoke(cli_main.app, ["probe", "rt1"])

    assert result.exit_code == 0
    assert seen["ports"] == [22, 80, 443, 6443, 7443]
    assert "filtered" in result.output


def test_zone_up_rejects_invalid_zone():
    result = runner.invoke(cli_main.app, ["zone", "up", "192.0.2.10", "-n", "aar1", "-r", "not-an-ip"])

    assert result.exit_code == 1
    assert "invalid zone" in result.output
    assert "DNS_PROVIDER" in result.output


def test_zone_up_reads_config_file(tmp_path, monkeypatch):
    config = tmp_path / "zone.json"
    config.write_text(json.dumps({"name": "aar1", "domain": "example.net", "router": {"hostname": "rt1"}}), encoding="utf-8")
    captured = {}

    class _Pipeline:
        def __init__(self, **kwargs):
            pass

        def run(self, host, zone, *, hooks):
            captured["zone"] = zone
            return None

    monkeypatch.setattr(cli_main, "ZoneBootstrapPipeline", _Pipeline)

    result = runner.invoke(
        cli_main.app,
        ["zone", "up", "192.0.2.10", "-c", str(config), "-H", "rt1-aar1", "-r", "10.255.0.1", "-a", "64512"],
    )

    assert result.exit_code == 0, result.output
    zone = captured["zone"]
    assert (zone.name, zone.router.hostname, zone.router.id, zone.router.asn) == ("aar1", "rt1-aar1", "10.255.0.1", 64512)


def test_controller_run_once(tmp_path, monkeypatch):
    manifest = tmp_path / "fleet.json"
    manifest.write_text(
        json.dumps(
            {
                "hosts": [{"metadata": {"name": "web-1"}, "spec": {"host": "192.0.2.21", "secretRef": {"name": "creds"}}}],
                "firewalls": [{"metadata": {"name": "web"}, "spec": {"hostSelector": {"matchMetadata": {"name": "web-.*"}}}}],
            }
        ),
        encoding="utf-8",
    )
    client = FakeManagementClient(ubuntu("24.04"))
    monkeypatch.setattr(cli_main, "Manager", functools.partial(Manager, client_factory=lambda host, **kw: client))

    result = runner.invoke(cli_main.app, ["controller", "run", str(manifest), "--once", "--workers", "1"])

    assert result.exit_code == 0, result.output
    assert "web-1" in result.output
    assert "24.04" in result.output
    assert "OSProbed" in result.output


def test_controller_run_bad_manifest(tmp_path):
    manifest = tmp_path / "fleet.json"
    manifest.write_text("[", encoding="utf-8")

    result = runner.invoke(cli_main.app, ["controller", "run", str(manifest), "--once"])

    assert result.exit_code == 1
    assert "invalid JSON" in result.output


def test_doctor_runs(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))

    result = runner.invoke(cli_main.app, ["doctor", "run"])

    assert result.exit_code == 0
    assert "kraut doctor" in result.output
    assert "MISSING" in result.output

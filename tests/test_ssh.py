import base64
import hashlib

import paramiko
import pytest

from adapters import sshx
from adapters.management import ssh as ssh_management
from adapters.management.ssh import SSHManagementClient, parse_os_release
from conftest import make_host, make_secret
from core.domain.models import Host, OSInfo, Secret
from core.errors import ConnectivityError, RemoteCommandError
from core.log import null_logger

OS_RELEASE = """\
PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
# comment
ID=ubuntu
"""


class _Key:
    def __init__(self, blob):
        self.blob = blob

    def asbytes(self):
        return self.blob


class _Session:
    def __init__(self, config, proxy, responses, failures=()):
        self.config = config
        self.proxy = proxy
        self.responses = responses
        self.failures = set(failures)
        self.closed = False

    def run_command(self, command):
        if command in self.failures:
            raise RemoteCommandError(command, 1, "No such file or directory")
        return self.responses.get(command, ""), ""

    def close(self):
        self.closed = True


def _fake_dial(sessions, *, fail_hosts=(), responses=None, failures=()):
    responses = responses if responses is not None else {"cat /etc/os-release": OS_RELEASE, "uname -r": "5.15.0-91-generic\n"}

    def dial(config, *, proxy=None, logger=None):
        if config.host in fail_hosts:
            raise ConnectivityError(f"failed to establish SSH connection: {config.address}: refused")
        session = _Session(config, proxy, responses, failures)
        sessions.append(session)
        return session

    return dial


def _proxied_host():
    return Host.model_validate(
        {
            "metadata": {"name": "rt1", "namespace": "edge"},
            "spec": {
                "host": "10.0.0.1",
                "port": 2222,
                "ssh": {"user": "ops", "proxyHost": "bastion", "proxyUser": "jump", "proxyFingerprint": "SHA256:p"},
                "secretRef": {"name": "creds"},
            },
        }
    )


def test_parse_os_release():
    data = parse_os_release(OS_RELEASE)
    assert data["NAME"] == "Ubuntu"
    assert data["VERSION_ID"] == "22.04"
    assert "# comment" not in data


def test_connect_probes_os(store, monkeypatch):
    sessions = []
    monkeypatch.setattr(ssh_management.SSHClient, "dial", _fake_dial(sessions))
    store.put_secret(make_secret(**{Secret.KEY: "PEM", Secret.PASSPHRASE: "s3cret"}))
    host = make_host("web-1")

    with SSHManagementClient(host, secrets=store) as client:
        client.connect()
        assert client.current_os() == OSInfo(name="Ubuntu", version="22.04", kernel_version="5.15.0-91-generic")

    (session,) = sessions
    assert session.config.key == "PEM"
    assert session.config.passphrase == "s3cret"
    assert session.closed


def test_missing_os_fields_are_unknown(store, monkeypatch):
    monkeypatch.setattr(ssh_management.SSHClient, "dial", _fake_dial([], responses={"uname -r": "6.1\n"}))
    store.put_secret(make_secret())
    client = SSHManagementClient(make_host("web-1"), secrets=store)

    client.connect()

    assert client.current_os() == OSInfo(name="Unknown", version="Unknown", kernel_version="6.1")


def test_failed_probe_command_fails_connect(store, monkeypatch):
    monkeypatch.setattr(ssh_management.SSHClient, "dial", _fake_dial([], failures={"uname -r"}))
    store.put_secret(make_secret())
    client = SSHManagementClient(make_host("web-1"), secrets=store)

    with pytest.raises(RemoteCommandError, match="No such file"):
        client.connect()


def test_connects_through_proxy(store, monkeypatch):
    sessions = []
    monkeypatch.setattr(ssh_management.SSHClient, "dial", _fake_dial(sessions))
    store.put_secret(
        make_secret(
            "creds",
            "edge",
            **{Secret.PASSWORD: "pw", Secret.PROXY_KEY: "PROXY-PEM", Secret.PROXY_PASSWORD: "proxy-pw"},
        )
    )

    client = SSHManagementClient(_proxied_host(), secrets=store, connect_timeout=4.0)
    client.connect()
    client.disconnect()

    proxy, primary = sessions
    assert (proxy.config.host, proxy.config.port, proxy.config.user) == ("bastion", 22, "jump")
    assert (proxy.config.key, proxy.config.password, proxy.config.fingerprint) == ("PROXY-PEM", "proxy-pw", "SHA256:p")
    assert (primary.config.host, primary.config.port, primary.config.password) == ("10.0.0.1", 2222, "pw")
    assert primary.proxy is proxy
    assert primary.config.timeout == 4.0


def test_proxy_closed_when_primary_fails(store, monkeypatch):
    sessions = []
    monkeypatch.setattr(ssh_management.SSHClient, "dial", _fake_dial(sessions, fail_hosts={"10.0.0.1"}))
    store.put_secret(make_secret("creds", "edge"))

    with pytest.raises(ConnectivityError, match="10.0.0.1:2222"):
        SSHManagementClient(_proxied_host(), secrets=store).connect()

    (proxy,) = sessions
    assert proxy.closed


def test_fingerprints():
    key = _Key(b"ssh-ed25519 host key blob")
    digest = hashlib.sha256(key.blob).digest()
    expected = "SHA256:" + base64.b64encode(digest).decode().rstrip("=")

    assert sshx.fingerprint_sha256(key) == expected
    assert "=" not in sshx.fingerprint_sha256(key)
    assert sshx.fingerprint_matches(key, expected)
    assert sshx.fingerprint_matches(key, sshx.fingerprint_md5(key).upper())
    assert not sshx.fingerprint_matches(key, "SHA256:nope")


def test_fingerprint_policy():
    key = _Key(b"blob")
    logger = null_logger()

    sshx._FingerprintPolicy("", logger).missing_host_key(None, "rt1", key)
    sshx._FingerprintPolicy(sshx.fingerprint_sha256(key), logger).missing_host_key(None, "rt1", key)
    with pytest.raises(paramiko.SSHException, match="host key mismatch"):
        sshx._FingerprintPolicy("SHA256:other", logger).missing_host_key(None, "rt1", key)


@pytest.mark.parametrize(
    ("target", "expected"),
    [
        ("rt1", ("rt1", 22)),
        ("rt1:2222", ("rt1", 2222)),
        ("[2001:db8::1]:2200", ("2001:db8::1", 2200)),
        ("[2001:db8::1]", ("2001:db8::1", 22)),
        ("2001:db8::1", ("2001:db8::1", 22)),
    ],
)
def test_split_host_port(target, expected):
    assert sshx.split_host_port(target) == expected


def test_load_private_key_rejects_garbage():
    with pytest.raises(ConnectivityError, match="failed to parse private key"):
        sshx.load_private_key("not a key")


def test_fingerprint_batch_keeps_order_and_errors():
    def probe(target):
        if target == "down":
            raise ConnectivityError("failed to connect: down:22: refused")
        return f"SHA256:{target}"

    rows = sshx.probe_host_fingerprints(["a", "down", "b"], probe=probe)

    assert rows == [("a", "SHA256:a"), ("down", "failed to connect: down:22: refused"), ("b", "SHA256:b")]
    assert sshx.probe_host_fingerprints([], probe=probe) == []

import pytest

from conftest import make_host
from core.domain.models import OSInfo
from core.errors import CompatibilityError
from core.services.compatibility import check_host_compatibility, is_compatible


@pytest.mark.parametrize(
    ("name", "version", "expected"),
    [
        ("Ubuntu", "20.10", False),
        ("Ubuntu", "21.03", False),
        ("Ubuntu", "21.04", True),
        ("Ubuntu", "21.4", True),
        ("Ubuntu", "22.04", True),
        ("Ubuntu", "22.x", True),
        ("Ubuntu", "v22.04", True),
        ("Ubuntu", "Unknown", False),
        ("Ubuntu", "", False),
        ("NX-OS", "10.2", False),
        ("Unknown", "24.04", False),
    ],
)
def test_is_compatible(name, version, expected):
    ok, reason = is_compatible(OSInfo(name=name, version=version))
    assert ok is expected
    assert (reason == "") is expected


def test_version_parts():
    assert (OSInfo(version="22.04").major, OSInfo(version="22.04").minor) == (22, 4)
    assert OSInfo(version="v1.2").major == 1
    assert OSInfo(version="22").minor == -1
    assert OSInfo(version="+3.7").major == 3
    assert OSInfo(version="abc.def").major == -1
    assert OSInfo(version="").major == -1


def test_old_ubuntu_reports_version():
    host = make_host("web-1", os_info=OSInfo(name="Ubuntu", version="20.04"))
    with pytest.raises(CompatibilityError, match="supported OS version"):
        check_host_compatibility(host)


def test_other_os_reports_os():
    host = make_host("sw-1", os_info=OSInfo(name="NX-OS", version="10.2"))
    with pytest.raises(CompatibilityError, match="failed to detect supported OS: default/sw-1"):
        check_host_compatibility(host)


def test_unprobed_host_is_incompatible():
    with pytest.raises(CompatibilityError):
        check_host_compatibility(make_host("web-1"))

"""Operating system compatibility gate for firewall enforcement.

Ubuntu ships nftables by default since 21.04, which is the oldest release
the firewall driver supports.
"""

from __future__ import annotations

from core.domain.models import OS_UBUNTU, Host, OSInfo
from core.errors import CompatibilityError

MIN_UBUNTU = (21, 4)


def is_compatible(os_info: OSInfo) -> tuple[bool, str]:
    """Return `(ok, reason)`. `reason` is empty when `ok` is true."""

    if os_info.name != OS_UBUNTU:
        return False, f"unsupported OS: {os_info.name or 'unknown'}"

    major, minor = os_info.major, os_info.minor
    required = f"Ubuntu {MIN_UBUNTU[0]}.{MIN_UBUNTU[1]:02d} or later is required"
    if major < MIN_UBUNTU[0]:
        return False, required
    if major == MIN_UBUNTU[0] and minor < MIN_UBUNTU[1]:
        return False, required
    return True, ""


def check_host_compatibility(host: Host) -> None:
    """Raise `CompatibilityError` if the host's observed OS is not supported."""

    ok, reason = is_compatible(host.status.os)
    if ok:
        return
    reference = str(host.key)
    if host.status.os.name == OS_UBUNTU:
        raise CompatibilityError(f"failed to detect supported OS version: {reason}: {reference}")
    raise CompatibilityError(f"failed to detect supported OS: {reference}")

"""Domain models (pydantic v2).

- Declared intent (`spec`) and observed state (`status`) of the managed
  resources: hosts, firewalls and the credential bundles they reference.
- These models describe *what* a resource is, not *how* it is reconciled.
- Field aliases accept the camelCase spelling used in manifests.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

OS_UBUNTU = "Ubuntu"

_INTEGER = re.compile(r"^[+-]?\d+$")


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Protocol(str, Enum):
    """Protocol used to manage a host."""

    SSH = "SSH"


class ProbeStatus(str, Enum):
    """Result of a TCP reachability probe.

    The names follow packet filter verdicts, not socket errors:

    - `open`: the port accepts connections.
    - `closed`: packets are silently dropped (the attempt times out).
    - `filtered`: the host actively rejects the connection.
    """

    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


class NamespacedName(BaseModel):
    """Identity of a namespaced resource, used as work queue key."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class ObjectMeta(_Model):
    name: str = Field(..., min_length=1, max_length=253, description="Resource name.")
    namespace: str = Field(default="default", description="Resource namespace.")
    labels: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(namespace=self.namespace, name=self.name)


def _version_segment(segments: list[str], index: int) -> int:
    if len(segments) > index and _INTEGER.match(segments[index]):
        return int(segments[index])
    return -1


class OSInfo(_Model):
    """Snapshot of a host's operating system, as produced by one probe."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str = Field(default="", description="Operating system name, e.g. 'Ubuntu'.")
    version: str = Field(default="", description="Operating system version, e.g. '22.04'.")
    kernel_version: str = Field(
        default="",
        alias="kernelVersion",
        description="Kernel release as reported by `uname -r`.",
    )

    @property
    def major(self) -> int:
        """Major version, or -1 if it cannot be parsed. A leading 'v' is ignored."""

        return _version_segment(self.version.removeprefix("v").split("."), 0)

    @property
    def minor(self) -> int:
        """Minor version, or -1 if it cannot be parsed."""

        return _version_segment(self.version.split("."), 1)


class SSHOptions(_Model):
    fingerprint: str = Field(
        default="",
        description="Host key fingerprint in the format `{algorithm}:{hash}`.",
    )
    user: str = Field(default="", description="User to connect as.")
    proxy_host: str = Field(default="", alias="proxyHost", description="Optional jump host.")
    proxy_port: int = Field(default=22, alias="proxyPort", ge=1, le=65535)
    proxy_fingerprint: str = Field(default="", alias="proxyFingerprint")
    proxy_user: str = Field(default="", alias="proxyUser")


class SecretReference(_Model):
    name: str = Field(..., min_length=1)
    namespace: str = Field(
        default="",
        description="Namespace of the secret. Empty means the namespace of the referencing resource.",
    )


class HostSpec(_Model):
    host: str = Field(..., min_length=1, description="Address to connect to.")
    port: int = Field(default=22, ge=1, le=65535)
    protocol: Protocol = Field(default=Protocol.SSH)
    ssh: SSHOptions = Field(default_factory=SSHOptions)
    secret_ref: SecretReference = Field(..., alias="secretRef")


class HostStatus(_Model):
    os: OSInfo = Field(default_factory=OSInfo)


class Host(_Model):
    """A remotely administered host."""

    kind: ClassVar[str] = "Host"

    metadata: ObjectMeta
    spec: HostSpec
    status: HostStatus = Field(default_factory=HostStatus)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key

    def secret_key(self) -> NamespacedName:
        ref = self.spec.secret_ref
        return NamespacedName(namespace=ref.namespace or self.metadata.namespace, name=ref.name)


class MetadataMatcher(_Model):
    """Regular expressions matched against resource metadata.

    An empty `namespace` means the namespace of the resource being matched.
    """

    name: str = Field(default="", description="Pattern for the resource name.")
    namespace: str = Field(default="", description="Pattern for the resource namespace.")


class HostSelector(_Model):
    match_metadata: MetadataMatcher = Field(default_factory=MetadataMatcher, alias="matchMetadata")


class FirewallSpec(_Model):
    host_selector: HostSelector = Field(default_factory=HostSelector, alias="hostSelector")


class FirewallStatus(_Model):
    host_count: int = Field(
        default=0,
        ge=0,
        alias="hostCount",
        description="Number of hosts currently enforcing the firewall.",
    )


class Firewall(_Model):
    """Firewall intent applied to every host matched by its selector."""

    kind: ClassVar[str] = "Firewall"

    metadata: ObjectMeta
    spec: FirewallSpec = Field(default_factory=FirewallSpec)
    status: FirewallStatus = Field(default_factory=FirewallStatus)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key


class Secret(_Model):
    """Credential bundle referenced by hosts.

    Conventional keys: `key`, `passphrase`, `passwordInsecure` for the
    host itself and `proxyKey`, `proxyPassphrase`, `proxyPasswordInsecure`
    for the optional jump host.
    """

    kind: ClassVar[str] = "Secret"

    KEY: ClassVar[str] = "key"
    PASSPHRASE: ClassVar[str] = "passphrase"
    PASSWORD: ClassVar[str] = "passwordInsecure"
    PROXY_KEY: ClassVar[str] = "proxyKey"
    PROXY_PASSPHRASE: ClassVar[str] = "proxyPassphrase"
    PROXY_PASSWORD: ClassVar[str] = "proxyPasswordInsecure"

    metadata: ObjectMeta
    data: dict[str, str] = Field(default_factory=dict, repr=False)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key

    def get(self, field: str) -> str:
        return self.data.get(field, "")


class EventType(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"


class Event(BaseModel):
    """Diagnostic record attached to a resource."""

    involved_object: str = Field(..., description="`Kind/namespace/name` of the resource.")
    type: EventType
    reason: str = Field(..., min_length=1)
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

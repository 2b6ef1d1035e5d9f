"""Zone bootstrap intent.

A zone is a site-level unit: a router host with a stable identity (router
ID, ASN) serving a DNS domain. The model is permissive on purpose so the
CLI can assemble it from flags and a config file and then report every
problem at once through `ensure_valid`. String fields are stripped both
on construction and on assignment.
"""

from __future__ import annotations

import ipaddress

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.errors import ZoneValidationError

_MAX_ASN = 2**32 - 1


class ZoneRouter(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True, validate_assignment=True)

    hostname: str = Field(default="", description="Hostname of the router serving the zone.")
    id: str = Field(
        default="",
        alias="routerId",
        description="IPv4 router identity, also configured on the loopback interface.",
    )
    asn: int = Field(default=0, description="Autonomous system number of the zone.")
    gateway_subnet: str | None = Field(
        default=None,
        alias="gatewaySubnet",
        description="IPv4 subnet served by the zone gateway.",
    )

    @property
    def router_id(self) -> ipaddress.IPv4Address:
        return ipaddress.IPv4Address(self.id)


class Zone(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True, validate_assignment=True)

    name: str = Field(default="", description="Name of the zone, e.g. 'aar1'.")
    domain: str = Field(default="", description="DNS domain containing the zone records.")
    router: ZoneRouter = Field(default_factory=ZoneRouter)

    def problems(self) -> list[str]:
        out: list[str] = []
        if not self.name.strip():
            out.append("name is required")
        if not self.domain.strip():
            out.append("domain is required")
        if not self.router.hostname.strip():
            out.append("router hostname is required")
        try:
            ipaddress.IPv4Address(self.router.id)
        except ValueError:
            out.append(f"router ID is not an IPv4 address: {self.router.id!r}")
        if self.router.asn <= 0 or self.router.asn > _MAX_ASN:
            out.append(f"ASN must be between 1 and {_MAX_ASN}: {self.router.asn}")
        if self.router.gateway_subnet:
            try:
                ipaddress.IPv4Network(self.router.gateway_subnet, strict=True)
            except ValueError:
                out.append(f"gateway subnet is not an IPv4 network: {self.router.gateway_subnet!r}")
        return out

    def ensure_valid(self) -> None:
        problems = self.problems()
        if problems:
            raise ZoneValidationError(problems)

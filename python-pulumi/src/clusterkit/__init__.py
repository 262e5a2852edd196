from __future__ import annotations

import dataclasses
import enum
import re
import typing

ALL_PROTOCOLS = "-1"
ANYWHERE_CIDR = "0.0.0.0/0"
DEFAULT_TENANCY = "default"
MAX_PORT = 65535
NAME_TAG_KEY = "Name"
SPREAD_STRATEGY = "spread"

REGION_REGEX = re.compile(r"^[a-z]{2}(-[a-z]+)+-[0-9]+$")
CAPACITY_TIMEOUT_REGEX = re.compile(r"^(0|([0-9]+h)?([0-9]+m)?([0-9]+s)?)$")

T = typing.TypeVar("T")


@dataclasses.dataclass(frozen=True)
class Enabled(typing.Generic[T]):
    """An optional component that was requested and built."""

    value: T


@dataclasses.dataclass(frozen=True)
class Disabled(typing.Generic[T]):
    """An optional component that was not built.

    `passthrough` carries a caller-supplied stand-in when the component has one
    (an externally managed instance profile name, for example).
    """

    passthrough: T | None = None


class TagKeys(enum.StrEnum):
    CLUSTER_MEMBERSHIP = "clusterkit.io/cluster"
    CLUSTERKIT_MANAGED_BY = "clusterkit.io/managed-by"


class VolumeType(enum.StrEnum):
    STANDARD = "standard"
    GP2 = "gp2"
    GP3 = "gp3"
    IO1 = "io1"
    IO2 = "io2"
    SC1 = "sc1"
    ST1 = "st1"


# Only gp3 volumes accept a throughput setting.
THROUGHPUT_VOLUME_TYPES = (VolumeType.GP3,)


class Tenancy(enum.StrEnum):
    DEFAULT = "default"
    DEDICATED = "dedicated"
    HOST = "host"


class HealthCheckType(enum.StrEnum):
    EC2 = "EC2"
    ELB = "ELB"


class TerminationPolicy(enum.StrEnum):
    ALLOCATION_STRATEGY = "AllocationStrategy"
    CLOSEST_TO_NEXT_INSTANCE_HOUR = "ClosestToNextInstanceHour"
    DEFAULT = "Default"
    NEWEST_INSTANCE = "NewestInstance"
    OLDEST_INSTANCE = "OldestInstance"
    OLDEST_LAUNCH_CONFIGURATION = "OldestLaunchConfiguration"
    OLDEST_LAUNCH_TEMPLATE = "OldestLaunchTemplate"


class GraphKeys(enum.StrEnum):
    CLUSTER_GROUP = "cluster-group"
    IAM_ROLE = "iam-role"
    INSTANCE_PROFILE = "instance-profile"
    LAUNCH_TEMPLATE = "launch-template"
    PLACEMENT_GROUP = "placement-group"
    SECURITY_GROUP = "security-group"
    SECURITY_GROUP_RULES = "security-group-rules"


def _check_port(port: int, label: str) -> None:
    if not 0 < port <= MAX_PORT:
        msg = f"{label} must be between 1 and {MAX_PORT}, got {port}"
        raise ValueError(msg)


@dataclasses.dataclass(frozen=True)
class ClusterTag:
    key: str
    value: str
    propagate_at_launch: bool = True


@dataclasses.dataclass(frozen=True)
class VolumeConfig:
    volume_type: str = VolumeType.GP3
    volume_size: int = 50
    device_name: str = "/dev/xvda"
    iops: int | None = None
    throughput: int | None = None
    delete_on_termination: bool = True
    encrypted: bool = False

    def __post_init__(self):
        if self.volume_type not in VolumeType:
            msg = f"Unsupported volume type {self.volume_type!r}; expected one of {sorted(VolumeType)}"
            raise ValueError(msg)
        if self.volume_size <= 0:
            msg = f"Volume size must be positive, got {self.volume_size}"
            raise ValueError(msg)

    @property
    def supports_throughput(self) -> bool:
        return self.volume_type in THROUGHPUT_VOLUME_TYPES


@dataclasses.dataclass(frozen=True)
class PlacementConfig:
    spread_enabled: bool = False
    tenancy: str = DEFAULT_TENANCY

    def __post_init__(self):
        if self.tenancy not in Tenancy:
            msg = f"Unsupported tenancy {self.tenancy!r}; expected one of {sorted(Tenancy)}"
            raise ValueError(msg)


@dataclasses.dataclass(frozen=True)
class MonitoringConfig:
    detailed_monitoring: bool = False


@dataclasses.dataclass(frozen=True)
class IdentityConfig:
    enabled: bool = True
    path: str = "/"
    # Required when enabled is False; the instance profile is then managed elsewhere.
    external_profile_name: str | None = None
    permissions_boundary: str | None = None

    def __post_init__(self):
        if not self.path.startswith("/") or not self.path.endswith("/"):
            msg = f"IAM path must begin and end with '/', got {self.path!r}"
            raise ValueError(msg)
        if not self.enabled and not self.external_profile_name:
            msg = "identity.external_profile_name is required when identity management is disabled"
            raise ValueError(msg)


@dataclasses.dataclass(frozen=True)
class NetworkConfig:
    associate_public_ip_address: bool = False
    additional_security_group_ids: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class SshConfig:
    port: int = 22
    allowed_cidr_blocks: list[str] = dataclasses.field(default_factory=list)
    allowed_security_group_ids: list[str] = dataclasses.field(default_factory=list)

    def __post_init__(self):
        _check_port(self.port, "ssh.port")


@dataclasses.dataclass(frozen=True)
class ClusterPorts:
    server_rpc: int = 8300
    serf_lan: int = 8301
    serf_wan: int = 8302
    cli_rpc: int = 8400
    http_api: int = 8500
    dns: int = 8600

    def __post_init__(self):
        for field in dataclasses.fields(self):
            _check_port(getattr(self, field.name), f"ports.{field.name}")


@dataclasses.dataclass(frozen=True)
class HealthCheckConfig:
    type: str = HealthCheckType.EC2
    grace_period: int = 300

    def __post_init__(self):
        if self.type not in HealthCheckType:
            msg = f"Unsupported health check type {self.type!r}; expected one of {sorted(HealthCheckType)}"
            raise ValueError(msg)
        if self.grace_period < 0:
            msg = f"health_check.grace_period must not be negative, got {self.grace_period}"
            raise ValueError(msg)


@dataclasses.dataclass(frozen=True)
class ClusterConfig:
    name: str
    region: str
    vpc_id: str
    ami_id: str
    size: int = 3
    instance_type: str = "t3.micro"
    key_name: str | None = None
    # Opaque to clusterkit; base64 encoded into the launch template as-is.
    user_data: str = ""
    availability_zones: list[str] = dataclasses.field(default_factory=list)
    subnet_ids: list[str] = dataclasses.field(default_factory=list)
    root_volume: VolumeConfig = dataclasses.field(default_factory=VolumeConfig)
    ebs_volumes: list[VolumeConfig] = dataclasses.field(default_factory=list)
    ebs_optimized: bool = False
    spot_price: str | None = None
    placement: PlacementConfig = dataclasses.field(default_factory=PlacementConfig)
    monitoring: MonitoringConfig = dataclasses.field(default_factory=MonitoringConfig)
    identity: IdentityConfig = dataclasses.field(default_factory=IdentityConfig)
    network: NetworkConfig = dataclasses.field(default_factory=NetworkConfig)
    ssh: SshConfig = dataclasses.field(default_factory=SshConfig)
    ports: ClusterPorts = dataclasses.field(default_factory=ClusterPorts)
    allowed_inbound_cidr_blocks: list[str] = dataclasses.field(default_factory=list)
    allowed_inbound_security_group_ids: list[str] = dataclasses.field(default_factory=list)
    cluster_tag_key: str = TagKeys.CLUSTER_MEMBERSHIP
    cluster_tag_value: str | None = None  # defaults to the cluster name
    tags: list[ClusterTag] = dataclasses.field(default_factory=list)
    termination_policies: list[str] = dataclasses.field(default_factory=lambda: [str(TerminationPolicy.DEFAULT)])
    health_check: HealthCheckConfig = dataclasses.field(default_factory=HealthCheckConfig)
    wait_for_capacity_timeout: str = "10m"
    enabled_metrics: list[str] = dataclasses.field(default_factory=list)
    target_group_arns: list[str] = dataclasses.field(default_factory=list)
    protect_from_scale_in: bool = False
    service_linked_role_arn: str | None = None

    @property
    def membership_tag_value(self) -> str:
        return self.cluster_tag_value or self.name

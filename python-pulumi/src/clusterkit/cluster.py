from __future__ import annotations

import pathlib
import re
import typing
import warnings

import deepmerge  # type: ignore
import yaml

import clusterkit
import clusterkit.paths
from clusterkit.pulumi_resources.lib import validate_tags

# Leaves room for the "-" separator inside the 38 character IAM name prefix limit.
CLUSTER_NAME_REGEX = re.compile(r"^[a-zA-Z][a-zA-Z0-9-]{0,31}$")

_NESTED_SECTIONS: dict[str, type] = {
    "root_volume": clusterkit.VolumeConfig,
    "placement": clusterkit.PlacementConfig,
    "monitoring": clusterkit.MonitoringConfig,
    "identity": clusterkit.IdentityConfig,
    "network": clusterkit.NetworkConfig,
    "ssh": clusterkit.SshConfig,
    "ports": clusterkit.ClusterPorts,
    "health_check": clusterkit.HealthCheckConfig,
}


def _underscore_keys(d: dict[str, typing.Any]) -> dict[str, typing.Any]:
    return {k.replace("-", "_"): v for k, v in d.items()}


def _cluster_tag(d: dict[str, typing.Any]) -> clusterkit.ClusterTag:
    d = _underscore_keys(d)
    # YAML reads `value: 42` as an int; AWS tag values are always strings.
    if d.get("value") is not None and not isinstance(d["value"], str):
        d["value"] = str(d["value"])
    return clusterkit.ClusterTag(**d)


def load_cluster_config(name: str, spec: dict[str, typing.Any]) -> clusterkit.ClusterConfig:
    """Build a ClusterConfig from a `spec` mapping as found in cluster.yaml."""
    spec = _underscore_keys(spec)

    for section, cls in _NESTED_SECTIONS.items():
        if section in spec and isinstance(spec[section], dict):
            spec[section] = cls(**_underscore_keys(spec[section]))

    if "ebs_volumes" in spec:
        spec["ebs_volumes"] = [clusterkit.VolumeConfig(**_underscore_keys(v)) for v in spec["ebs_volumes"]]

    if "tags" in spec:
        spec["tags"] = [_cluster_tag(t) for t in spec["tags"]]

    spec.setdefault("name", name)

    return clusterkit.ClusterConfig(**spec)


def validate_cluster_config(cfg: clusterkit.ClusterConfig) -> None:
    """Reject configuration errors before any resource is declared."""
    if not CLUSTER_NAME_REGEX.match(cfg.name):
        msg = f"Cluster name {cfg.name!r} must start with a letter and use at most 32 letters, digits or '-'"
        raise ValueError(msg)

    if isinstance(cfg.size, bool) or not isinstance(cfg.size, int) or cfg.size < 0:
        msg = f"Cluster size must be a non-negative integer, got {cfg.size!r}"
        raise ValueError(msg)

    if not clusterkit.REGION_REGEX.match(cfg.region):
        msg = f"Region {cfg.region!r} is not a valid AWS region name"
        raise ValueError(msg)

    if not cfg.availability_zones and not cfg.subnet_ids:
        msg = "At least one of availability_zones or subnet_ids must be set"
        raise ValueError(msg)

    if cfg.availability_zones and cfg.subnet_ids:
        msg = "Set only one of availability_zones or subnet_ids; subnets already determine the zones"
        raise ValueError(msg)

    if not clusterkit.CAPACITY_TIMEOUT_REGEX.match(cfg.wait_for_capacity_timeout):
        msg = f"wait_for_capacity_timeout {cfg.wait_for_capacity_timeout!r} must be a duration such as '10m' or '0'"
        raise ValueError(msg)

    for policy in cfg.termination_policies:
        if policy not in clusterkit.TerminationPolicy:
            msg = f"Unsupported termination policy {policy!r}; expected one of {sorted(clusterkit.TerminationPolicy)}"
            raise ValueError(msg)

    if cfg.cluster_tag_key == clusterkit.NAME_TAG_KEY:
        msg = f"cluster_tag_key must not be {clusterkit.NAME_TAG_KEY!r}; the Name tag is always set to the cluster name"
        raise ValueError(msg)

    validate_tags(
        [
            clusterkit.ClusterTag(key=cfg.cluster_tag_key, value=cfg.membership_tag_value),
            *cfg.tags,
        ]
    )

    for volume in [cfg.root_volume, *cfg.ebs_volumes]:
        if volume.throughput is not None and not volume.supports_throughput:
            warnings.warn(
                f"throughput is ignored for {volume.volume_type} volume {volume.device_name}; only gp3 supports it",
                stacklevel=2,
            )


class ClusterDefinition:
    """A cluster definition directory: `$CLUSTERKIT_ROOT/clusters/<name>/cluster.yaml`."""

    d: pathlib.Path
    cfg: clusterkit.ClusterConfig
    spec: dict[str, typing.Any]

    def __init__(self, name: str, paths: clusterkit.paths.Paths | None = None, *, load_yaml=True):
        self.name = name
        self.d = (paths or clusterkit.paths.Paths()).clusters / name

        if not load_yaml:
            return

        if not self.cluster_yaml.exists():
            msg = f"Cluster definition {str(self.cluster_yaml)!r} does not exist"
            raise ValueError(msg)

        self._load_config()

    @property
    def cluster_yaml(self) -> pathlib.Path:
        return self.d / "cluster.yaml"

    def _load_config(self) -> None:
        spec: dict[str, typing.Any] = {
            "name": self.name,
            "identity": {"enabled": True, "path": "/"},
            "ssh": {"port": 22},
        }

        cfg_dict = yaml.safe_load(self.cluster_yaml.read_text()) or {}
        if "spec" not in cfg_dict:
            msg = f"{str(self.cluster_yaml)!r} has no 'spec' section"
            raise ValueError(msg)

        deepmerge.always_merger.merge(spec, _underscore_keys(cfg_dict["spec"]))

        self.spec = spec
        self.cfg = load_cluster_config(self.name, spec)
        validate_cluster_config(self.cfg)

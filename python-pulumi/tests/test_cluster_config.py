import dataclasses
import pathlib
import typing
import warnings

import pytest

import clusterkit
import clusterkit.cluster


def test_cluster_config_defaults() -> None:
    cfg = clusterkit.ClusterConfig(name="demo", region="us-east-1", vpc_id="vpc-1", ami_id="ami-1")

    assert cfg.size == 3
    assert cfg.root_volume.volume_type == clusterkit.VolumeType.GP3
    assert cfg.placement.spread_enabled is False
    assert cfg.placement.tenancy == "default"
    assert cfg.identity.enabled is True
    assert cfg.identity.path == "/"
    assert cfg.ssh.port == 22
    assert cfg.ports.server_rpc == 8300
    assert cfg.ports.dns == 8600
    assert cfg.cluster_tag_key == "clusterkit.io/cluster"
    assert cfg.membership_tag_value == "demo"
    assert cfg.termination_policies == ["Default"]
    assert cfg.health_check.type == "EC2"
    assert cfg.wait_for_capacity_timeout == "10m"


def test_cluster_config_is_frozen(cluster_config: clusterkit.ClusterConfig) -> None:
    assert dataclasses.is_dataclass(cluster_config)

    with pytest.raises(dataclasses.FrozenInstanceError):
        cluster_config.size = 5  # type: ignore[misc]


def test_membership_tag_value_override(cluster_config: clusterkit.ClusterConfig) -> None:
    cfg = dataclasses.replace(cluster_config, cluster_tag_value="consul-servers")

    assert cfg.membership_tag_value == "consul-servers"


def test_volume_config_rejects_unknown_type() -> None:
    with pytest.raises(ValueError, match="Unsupported volume type"):
        clusterkit.VolumeConfig(volume_type="magnetic-tape")


def test_volume_config_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError, match="must be positive"):
        clusterkit.VolumeConfig(volume_size=0)


@pytest.mark.parametrize(
    ("volume_type", "expected"),
    [("gp3", True), ("gp2", False), ("io2", False), ("standard", False)],
)
def test_volume_config_supports_throughput(volume_type: str, expected: bool) -> None:
    assert clusterkit.VolumeConfig(volume_type=volume_type).supports_throughput is expected


def test_placement_config_rejects_unknown_tenancy() -> None:
    with pytest.raises(ValueError, match="Unsupported tenancy"):
        clusterkit.PlacementConfig(tenancy="shared")


def test_identity_config_requires_external_profile_when_disabled() -> None:
    with pytest.raises(ValueError, match="external_profile_name is required"):
        clusterkit.IdentityConfig(enabled=False)

    identity = clusterkit.IdentityConfig(enabled=False, external_profile_name="shared-profile")
    assert identity.external_profile_name == "shared-profile"


@pytest.mark.parametrize("path", ["", "cluster/", "/cluster"])
def test_identity_config_rejects_bad_path(path: str) -> None:
    with pytest.raises(ValueError, match="IAM path"):
        clusterkit.IdentityConfig(path=path)


@pytest.mark.parametrize("port", [0, -1, 65536])
def test_ssh_config_rejects_bad_port(port: int) -> None:
    with pytest.raises(ValueError, match="ssh.port"):
        clusterkit.SshConfig(port=port)


def test_cluster_ports_rejects_bad_port() -> None:
    with pytest.raises(ValueError, match="ports.http_api"):
        clusterkit.ClusterPorts(http_api=70000)


def test_health_check_config_validation() -> None:
    with pytest.raises(ValueError, match="Unsupported health check type"):
        clusterkit.HealthCheckConfig(type="TCP")

    with pytest.raises(ValueError, match="grace_period"):
        clusterkit.HealthCheckConfig(grace_period=-1)


def test_validate_cluster_config_accepts_valid(cluster_config: clusterkit.ClusterConfig) -> None:
    clusterkit.cluster.validate_cluster_config(cluster_config)


def test_validate_cluster_config_accepts_zero_size(cluster_config: clusterkit.ClusterConfig) -> None:
    clusterkit.cluster.validate_cluster_config(dataclasses.replace(cluster_config, size=0))


@pytest.mark.parametrize(
    ("changes", "match"),
    [
        ({"name": "1-starts-with-digit"}, "Cluster name"),
        ({"name": "x" * 33}, "Cluster name"),
        ({"size": -1}, "non-negative integer"),
        ({"size": True}, "non-negative integer"),
        ({"size": 2.5}, "non-negative integer"),
        ({"region": "US_EAST_1"}, "not a valid AWS region"),
        ({"subnet_ids": [], "availability_zones": []}, "availability_zones or subnet_ids"),
        ({"availability_zones": ["us-east-1a"]}, "only one of availability_zones or subnet_ids"),
        ({"wait_for_capacity_timeout": "ten minutes"}, "wait_for_capacity_timeout"),
        ({"termination_policies": ["Random"]}, "Unsupported termination policy"),
        ({"cluster_tag_key": "Name"}, "cluster_tag_key"),
        ({"cluster_tag_key": "aws:cluster"}, "reserved 'aws:' prefix"),
        ({"tags": [clusterkit.ClusterTag(key="", value="x")]}, "must not be empty"),
    ],
)
def test_validate_cluster_config_rejects(
    cluster_config: clusterkit.ClusterConfig, changes: dict[str, typing.Any], match: str
) -> None:
    cfg = dataclasses.replace(cluster_config, **changes)

    with pytest.raises(ValueError, match=match):
        clusterkit.cluster.validate_cluster_config(cfg)


def test_validate_cluster_config_zones_only(cluster_config: clusterkit.ClusterConfig) -> None:
    cfg = dataclasses.replace(cluster_config, subnet_ids=[], availability_zones=["us-east-1a", "us-east-1b"])

    clusterkit.cluster.validate_cluster_config(cfg)


def test_validate_cluster_config_warns_on_throughput_without_gp3(cluster_config: clusterkit.ClusterConfig) -> None:
    cfg = dataclasses.replace(cluster_config, root_volume=clusterkit.VolumeConfig(volume_type="gp2", throughput=250))

    with pytest.warns(UserWarning, match="throughput is ignored"):
        clusterkit.cluster.validate_cluster_config(cfg)


def test_validate_cluster_config_no_warning_for_gp3_throughput(cluster_config: clusterkit.ClusterConfig) -> None:
    cfg = dataclasses.replace(cluster_config, root_volume=clusterkit.VolumeConfig(volume_type="gp3", throughput=250))

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        clusterkit.cluster.validate_cluster_config(cfg)


def test_load_cluster_config_nested_sections() -> None:
    cfg = clusterkit.cluster.load_cluster_config(
        "demo",
        {
            "region": "eu-west-1",
            "vpc-id": "vpc-1",
            "ami-id": "ami-1",
            "subnet-ids": ["subnet-a"],
            "root-volume": {"volume-type": "gp2", "volume-size": 100},
            "ebs-volumes": [{"device-name": "/dev/xvdb", "volume-size": 200, "encrypted": True}],
            "placement": {"spread-enabled": True},
            "ssh": {"allowed-cidr-blocks": ["10.0.0.0/8"]},
            "tags": [{"key": "team", "value": "platform", "propagate-at-launch": False}],
        },
    )

    assert cfg.name == "demo"
    assert cfg.vpc_id == "vpc-1"
    assert cfg.root_volume == clusterkit.VolumeConfig(volume_type="gp2", volume_size=100)
    assert cfg.ebs_volumes == [clusterkit.VolumeConfig(device_name="/dev/xvdb", volume_size=200, encrypted=True)]
    assert cfg.placement.spread_enabled is True
    assert cfg.ssh.allowed_cidr_blocks == ["10.0.0.0/8"]
    assert cfg.tags == [clusterkit.ClusterTag(key="team", value="platform", propagate_at_launch=False)]


def test_cluster_definition_loads_yaml(
    write_cluster_yaml: typing.Callable[[str, dict[str, typing.Any]], pathlib.Path],
) -> None:
    write_cluster_yaml(
        "consul",
        {
            "region": "us-west-2",
            "vpc_id": "vpc-1",
            "ami_id": "ami-1",
            "size": 5,
            "availability-zones": ["us-west-2a", "us-west-2b"],
            "identity": {"path": "/clusters/"},
        },
    )

    definition = clusterkit.cluster.ClusterDefinition("consul")

    assert definition.cfg.name == "consul"
    assert definition.cfg.size == 5
    assert definition.cfg.availability_zones == ["us-west-2a", "us-west-2b"]
    # Defaults survive a partial section.
    assert definition.cfg.identity == clusterkit.IdentityConfig(enabled=True, path="/clusters/")
    assert definition.cfg.ssh.port == 22
    assert definition.spec["region"] == "us-west-2"


def test_cluster_definition_external_identity(
    write_cluster_yaml: typing.Callable[[str, dict[str, typing.Any]], pathlib.Path],
) -> None:
    write_cluster_yaml(
        "consul",
        {
            "region": "us-west-2",
            "vpc_id": "vpc-1",
            "ami_id": "ami-1",
            "subnet_ids": ["subnet-a"],
            "identity": {"enabled": False, "external-profile-name": "shared-profile"},
        },
    )

    cfg = clusterkit.cluster.ClusterDefinition("consul").cfg

    assert cfg.identity.enabled is False
    assert cfg.identity.external_profile_name == "shared-profile"


def test_cluster_definition_invalid_yaml_rejected(
    write_cluster_yaml: typing.Callable[[str, dict[str, typing.Any]], pathlib.Path],
) -> None:
    write_cluster_yaml("consul", {"region": "us-west-2", "vpc_id": "vpc-1", "ami_id": "ami-1", "size": -3})

    with pytest.raises(ValueError, match="non-negative integer"):
        clusterkit.cluster.ClusterDefinition("consul")


def test_cluster_definition_missing_file(clusterkit_root: pathlib.Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        clusterkit.cluster.ClusterDefinition("nope")


def test_cluster_definition_missing_spec(clusterkit_root: pathlib.Path) -> None:
    d = clusterkit_root / "clusters" / "consul"
    d.mkdir(parents=True)
    (d / "cluster.yaml").write_text("metadata: {}\n")

    with pytest.raises(ValueError, match="no 'spec' section"):
        clusterkit.cluster.ClusterDefinition("consul")


def test_cluster_definition_without_loading(clusterkit_root: pathlib.Path) -> None:
    definition = clusterkit.cluster.ClusterDefinition("consul", load_yaml=False)

    assert definition.cluster_yaml == clusterkit_root / "clusters" / "consul" / "cluster.yaml"


def test_load_cluster_config_coerces_tag_values() -> None:
    cfg = clusterkit.cluster.load_cluster_config(
        "demo",
        {
            "region": "eu-west-1",
            "vpc_id": "vpc-1",
            "ami_id": "ami-1",
            "subnet_ids": ["subnet-a"],
            "tags": [{"key": "cost-center", "value": 42}, {"key": "tier", "value": 1.5}],
        },
    )

    assert [t.value for t in cfg.tags] == ["42", "1.5"]
    clusterkit.cluster.validate_cluster_config(cfg)


def test_cluster_definition_numeric_tag_value(
    write_cluster_yaml: typing.Callable[[str, dict[str, typing.Any]], pathlib.Path],
) -> None:
    write_cluster_yaml(
        "consul",
        {
            "region": "us-west-2",
            "vpc_id": "vpc-1",
            "ami_id": "ami-1",
            "subnet_ids": ["subnet-a"],
            "tags": [{"key": "cost-center", "value": 42}],
        },
    )

    cfg = clusterkit.cluster.ClusterDefinition("consul").cfg

    assert cfg.tags == [clusterkit.ClusterTag(key="cost-center", value="42")]

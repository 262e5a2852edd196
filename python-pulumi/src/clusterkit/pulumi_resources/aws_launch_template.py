from __future__ import annotations

import base64
import dataclasses
import typing

import pulumi
import pulumi_aws as aws

import clusterkit
from clusterkit.pulumi_resources.aws_placement import PlacementRef, placement_group_name
from clusterkit.pulumi_resources.lib import aws_bool

if typing.TYPE_CHECKING:
    import clusterkit.replacement

SPOT_MARKET_TYPE = "spot"


@dataclasses.dataclass(frozen=True)
class LaunchSpec:
    launch_template: aws.ec2.LaunchTemplate
    placement: PlacementRef

    @property
    def id(self) -> pulumi.Output[str]:
        return self.launch_template.id

    @property
    def version(self) -> pulumi.Output[str]:
        return self.launch_template.latest_version.apply(str)


def encode_user_data(user_data: str | bytes) -> str | None:
    if not user_data:
        return None

    raw = user_data.encode() if isinstance(user_data, str) else user_data
    return base64.b64encode(raw).decode()


def block_device_mapping(volume: clusterkit.VolumeConfig) -> aws.ec2.LaunchTemplateBlockDeviceMappingArgs:
    # The EC2 API rejects throughput on anything but gp3.
    throughput = volume.throughput if volume.supports_throughput else None

    return aws.ec2.LaunchTemplateBlockDeviceMappingArgs(
        device_name=volume.device_name,
        ebs=aws.ec2.LaunchTemplateBlockDeviceMappingEbsArgs(
            volume_type=str(volume.volume_type),
            volume_size=volume.volume_size,
            iops=volume.iops,
            throughput=throughput,
            delete_on_termination=aws_bool(volume.delete_on_termination),
            encrypted=aws_bool(volume.encrypted),
        ),
    )


def launch_template_args(
    cfg: clusterkit.ClusterConfig,
    security_group_id: str | pulumi.Output[str],
    instance_profile_name: str | pulumi.Output[str],
    placement: PlacementRef,
    tags: dict[str, str],
) -> aws.ec2.LaunchTemplateArgs:
    instance_market_options = None
    if cfg.spot_price is not None:
        instance_market_options = aws.ec2.LaunchTemplateInstanceMarketOptionsArgs(
            market_type=SPOT_MARKET_TYPE,
            spot_options=aws.ec2.LaunchTemplateInstanceMarketOptionsSpotOptionsArgs(max_price=cfg.spot_price),
        )

    return aws.ec2.LaunchTemplateArgs(
        name_prefix=f"{cfg.name}-",
        description=f"Launch template for the {cfg.name} cluster",
        image_id=cfg.ami_id,
        instance_type=cfg.instance_type,
        key_name=cfg.key_name,
        user_data=encode_user_data(cfg.user_data),
        ebs_optimized=aws_bool(cfg.ebs_optimized),
        iam_instance_profile=aws.ec2.LaunchTemplateIamInstanceProfileArgs(name=instance_profile_name),
        network_interfaces=[
            aws.ec2.LaunchTemplateNetworkInterfaceArgs(
                device_index=0,
                associate_public_ip_address=aws_bool(cfg.network.associate_public_ip_address),
                delete_on_termination=aws_bool(True),
                security_groups=[security_group_id, *cfg.network.additional_security_group_ids],
            )
        ],
        block_device_mappings=[block_device_mapping(v) for v in [cfg.root_volume, *cfg.ebs_volumes]],
        # Tenancy always passes through; the group name only when spread placement was requested.
        placement=aws.ec2.LaunchTemplatePlacementArgs(
            group_name=placement_group_name(placement),
            tenancy=str(cfg.placement.tenancy),
        ),
        monitoring=aws.ec2.LaunchTemplateMonitoringArgs(enabled=cfg.monitoring.detailed_monitoring),
        instance_market_options=instance_market_options,
        tag_specifications=[
            aws.ec2.LaunchTemplateTagSpecificationArgs(resource_type="volume", tags=tags),
        ],
        update_default_version=True,
        tags=tags,
    )


def define_launch_template(
    cfg: clusterkit.ClusterConfig,
    security_group_id: str | pulumi.Output[str],
    instance_profile_name: str | pulumi.Output[str],
    placement: PlacementRef,
    tags: dict[str, str],
    graph: clusterkit.replacement.ResourceGraph,
    opts: pulumi.ResourceOptions | None = None,
) -> LaunchSpec:
    if opts is None:
        opts = pulumi.ResourceOptions()

    if cfg.root_volume.throughput is not None and not cfg.root_volume.supports_throughput:
        pulumi.log.debug(f"{cfg.name}: throughput is not applicable to {cfg.root_volume.volume_type} volumes")

    launch_template = aws.ec2.LaunchTemplate(
        cfg.name,
        launch_template_args(cfg, security_group_id, instance_profile_name, placement, tags),
        opts=pulumi.ResourceOptions.merge(opts, graph.options(clusterkit.GraphKeys.LAUNCH_TEMPLATE)),
    )

    return LaunchSpec(launch_template=launch_template, placement=placement)

from __future__ import annotations

import dataclasses
import typing

import pulumi
import pulumi_aws as aws

import clusterkit
import clusterkit.tags

if typing.TYPE_CHECKING:
    import clusterkit.replacement
    from clusterkit.pulumi_resources.aws_launch_template import LaunchSpec


@dataclasses.dataclass(frozen=True)
class ClusterGroup:
    group: aws.autoscaling.Group
    launch_spec: LaunchSpec
    size: int

    @property
    def name(self) -> pulumi.Output[str]:
        return self.group.name


def cluster_group_args(
    cfg: clusterkit.ClusterConfig,
    launch_spec: LaunchSpec,
    tag_set: list[clusterkit.ClusterTag],
) -> aws.autoscaling.GroupArgs:
    """
    :param cfg: the cluster configuration
    :param launch_spec: the launch template every instance is created from
    :param tag_set: the merged tag set, see `clusterkit.tags.merge_tags`
    :return: arguments for a fixed-size group; min, max and desired are all cfg.size
    """
    return aws.autoscaling.GroupArgs(
        name_prefix=f"{cfg.name}-",
        launch_template=aws.autoscaling.GroupLaunchTemplateArgs(
            id=launch_spec.id,
            version=launch_spec.version,
        ),
        min_size=cfg.size,
        max_size=cfg.size,
        desired_capacity=cfg.size,
        availability_zones=cfg.availability_zones or None,
        vpc_zone_identifiers=cfg.subnet_ids or None,
        target_group_arns=cfg.target_group_arns or None,
        health_check_type=str(cfg.health_check.type),
        health_check_grace_period=cfg.health_check.grace_period,
        wait_for_capacity_timeout=cfg.wait_for_capacity_timeout,
        termination_policies=[str(p) for p in cfg.termination_policies] or None,
        enabled_metrics=cfg.enabled_metrics or None,
        protect_from_scale_in=cfg.protect_from_scale_in,
        service_linked_role_arn=cfg.service_linked_role_arn,
        tags=clusterkit.tags.as_group_tags(tag_set),
    )


def define_cluster_group(
    cfg: clusterkit.ClusterConfig,
    launch_spec: LaunchSpec,
    tag_set: list[clusterkit.ClusterTag],
    graph: clusterkit.replacement.ResourceGraph,
    opts: pulumi.ResourceOptions | None = None,
) -> ClusterGroup:
    if opts is None:
        opts = pulumi.ResourceOptions()

    group = aws.autoscaling.Group(
        cfg.name,
        cluster_group_args(cfg, launch_spec, tag_set),
        opts=pulumi.ResourceOptions.merge(
            opts,
            graph.options(clusterkit.GraphKeys.CLUSTER_GROUP, depends_on=[launch_spec.launch_template]),
        ),
    )

    return ClusterGroup(group=group, launch_spec=launch_spec, size=cfg.size)

from __future__ import annotations

import typing

import pulumi
import pulumi_aws as aws

import clusterkit

if typing.TYPE_CHECKING:
    import clusterkit.replacement

PlacementRef = clusterkit.Enabled[aws.ec2.PlacementGroup] | clusterkit.Disabled[str]


def define_placement_group(
    name: str,
    enabled: bool,
    tags: dict[str, str],
    graph: clusterkit.replacement.ResourceGraph,
    opts: pulumi.ResourceOptions | None = None,
) -> PlacementRef:
    """Spread placement puts every instance on distinct underlying hardware.

    The group is auto-named after the cluster so a replacement can be created
    before the old group is removed.
    """
    if not enabled:
        return clusterkit.Disabled()

    if opts is None:
        opts = pulumi.ResourceOptions()

    return clusterkit.Enabled(
        aws.ec2.PlacementGroup(
            name,
            strategy=clusterkit.SPREAD_STRATEGY,
            tags=tags,
            opts=pulumi.ResourceOptions.merge(opts, graph.options(clusterkit.GraphKeys.PLACEMENT_GROUP)),
        )
    )


def placement_group_name(ref: PlacementRef) -> pulumi.Output[str] | None:
    if isinstance(ref, clusterkit.Enabled):
        return ref.value.name

    return None

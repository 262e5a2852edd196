from __future__ import annotations

import typing

import pulumi_aws as aws

import clusterkit

if typing.TYPE_CHECKING:
    import collections.abc


def merge_tags(
    name: str,
    cluster_tag_key: str,
    cluster_tag_value: str,
    tags: collections.abc.Iterable[clusterkit.ClusterTag],
) -> list[clusterkit.ClusterTag]:
    """Build the tag set applied to the cluster group.

    The Name and cluster membership tags are always first and always propagate
    to instances; instances discover their peers through the membership tag.
    User tags follow in their given order. A user tag reusing a mandatory key is
    dropped, and a repeated user key keeps its first occurrence.
    """
    mandatory = [
        clusterkit.ClusterTag(key=clusterkit.NAME_TAG_KEY, value=name, propagate_at_launch=True),
        clusterkit.ClusterTag(key=cluster_tag_key, value=cluster_tag_value, propagate_at_launch=True),
    ]

    seen = {t.key for t in mandatory}
    merged = list(mandatory)
    for tag in tags:
        if tag.key in seen:
            continue
        seen.add(tag.key)
        merged.append(tag)

    return merged


def as_group_tags(tag_set: list[clusterkit.ClusterTag]) -> list[aws.autoscaling.GroupTagArgs]:
    return [
        aws.autoscaling.GroupTagArgs(key=t.key, value=t.value, propagate_at_launch=t.propagate_at_launch)
        for t in tag_set
    ]


def as_resource_tags(tag_set: list[clusterkit.ClusterTag], name: str) -> dict[str, str]:
    """Flatten a tag set into the plain mapping used by every non-group resource."""
    return {t.key: t.value for t in tag_set} | {clusterkit.NAME_TAG_KEY: name}

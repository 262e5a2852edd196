from __future__ import annotations

import typing

if typing.TYPE_CHECKING:
    import collections.abc

    import clusterkit

_AWS_TAG_KEY_MAX_LENGTH = 128
_AWS_TAG_VALUE_MAX_LENGTH = 256


def aws_bool(value: bool) -> str:
    """Launch template flags are strings in the AWS provider ("true" / "false")."""
    return "true" if value else "false"


def validate_tags(tags: collections.abc.Iterable[clusterkit.ClusterTag]) -> None:
    """Reject tags AWS would refuse when the cluster group is created.

    Auto Scaling group tags follow the EC2 tag limits: keys up to 128
    characters, values up to 256, and no keys in the reserved 'aws:' namespace.
    """
    for tag in tags:
        if not tag.key:
            msg = "tag key must not be empty"
            raise ValueError(msg)
        if tag.key.lower().startswith("aws:"):
            msg = f"tag key uses reserved 'aws:' prefix: {tag.key!r}"
            raise ValueError(msg)
        if len(tag.key) > _AWS_TAG_KEY_MAX_LENGTH:
            msg = f"tag key exceeds AWS 128-character limit ({len(tag.key)} chars): {tag.key!r}"
            raise ValueError(msg)
        if tag.value is None:
            msg = f"tag value must not be None: key={tag.key}"
            raise ValueError(msg)
        if not isinstance(tag.value, str):
            msg = f"tag value must be a string, got {type(tag.value).__name__}: key={tag.key}"
            raise ValueError(msg)
        if len(tag.value) > _AWS_TAG_VALUE_MAX_LENGTH:
            msg = f"tag value exceeds AWS 256-character limit ({len(tag.value)} chars): key={tag.key}"
            raise ValueError(msg)

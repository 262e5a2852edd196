from __future__ import annotations

import dataclasses
import json
import typing

import pulumi
import pulumi_aws as aws

import clusterkit
import clusterkit.aws_iam

if typing.TYPE_CHECKING:
    import clusterkit.replacement

PolicyBinder = typing.Callable[
    [str, bool, pulumi.Output[str] | None, pulumi.ResourceOptions],
    list[aws.iam.RolePolicy],
]


@dataclasses.dataclass(frozen=True)
class ClusterIdentity:
    assume_role_policy: str
    role: aws.iam.Role
    instance_profile: aws.iam.InstanceProfile
    policies: list[aws.iam.RolePolicy]


IdentityRef = clusterkit.Enabled[ClusterIdentity] | clusterkit.Disabled[str]


def define_auto_join_policy(
    name: str,
    enabled: bool,
    role_id: pulumi.Output[str] | None,
    opts: pulumi.ResourceOptions,
) -> list[aws.iam.RolePolicy]:
    """Default policy binder: lets members find each other by tag."""
    if not enabled or role_id is None:
        return []

    return [
        aws.iam.RolePolicy(
            f"{name}-auto-join",
            name_prefix=f"{name}-auto-join-",
            role=role_id,
            policy=json.dumps(clusterkit.aws_iam.build_auto_join_policy()),
            opts=opts,
        )
    ]


def define_cluster_identity(
    name: str,
    identity: clusterkit.IdentityConfig,
    region: str,
    tags: dict[str, str],
    graph: clusterkit.replacement.ResourceGraph,
    opts: pulumi.ResourceOptions | None = None,
    policy_binder: PolicyBinder = define_auto_join_policy,
) -> IdentityRef:
    """
    Bind an IAM identity to the cluster instances.

    When identity management is disabled nothing is created and the externally
    managed instance profile name is passed through. Otherwise a role trusted by
    the regional EC2 service principal and an instance profile wrapping it are
    created. Either way the policy binder is called, with the role id or None.

    :param name: the cluster name, used as the prefix for every IAM name
    :param identity: the identity section of the cluster configuration
    :param region: the region the cluster runs in, selects the trusted principal
    :param tags: tags to apply to the role and instance profile
    :param graph: the cluster replacement graph, supplies per-resource lifecycle options
    :param opts: base options (typically the parent) merged into every resource
    :param policy_binder: attaches permission policies to the role
    :return: Enabled(ClusterIdentity) or Disabled(external profile name)
    """
    if opts is None:
        opts = pulumi.ResourceOptions()

    if not identity.enabled:
        pulumi.log.debug(f"{name}: using externally managed instance profile {identity.external_profile_name!r}")
        policy_binder(name, False, None, opts)
        return clusterkit.Disabled(passthrough=identity.external_profile_name)

    assume_role_policy = json.dumps(
        clusterkit.aws_iam.build_assume_role_policy(clusterkit.aws_iam.ec2_service_principal(region))
    )

    role = aws.iam.Role(
        f"{name}-role",
        name_prefix=f"{name}-",
        path=identity.path,
        assume_role_policy=assume_role_policy,
        permissions_boundary=identity.permissions_boundary,
        tags=tags,
        opts=pulumi.ResourceOptions.merge(opts, graph.options(clusterkit.GraphKeys.IAM_ROLE)),
    )

    instance_profile = aws.iam.InstanceProfile(
        f"{name}-profile",
        name_prefix=f"{name}-",
        path=identity.path,
        role=role.name,
        tags=tags,
        opts=pulumi.ResourceOptions.merge(opts, graph.options(clusterkit.GraphKeys.INSTANCE_PROFILE)),
    )

    policy_opts = pulumi.ResourceOptions.merge(opts, pulumi.ResourceOptions(parent=role))
    policies = policy_binder(name, True, role.id, policy_opts)

    return clusterkit.Enabled(
        ClusterIdentity(
            assume_role_policy=assume_role_policy,
            role=role,
            instance_profile=instance_profile,
            policies=policies,
        )
    )


def instance_profile_name(ref: IdentityRef) -> str | pulumi.Output[str]:
    if isinstance(ref, clusterkit.Enabled):
        return ref.value.instance_profile.name

    if ref.passthrough is None:
        msg = "an external instance profile name is required when identity management is disabled"
        raise ValueError(msg)

    return ref.passthrough

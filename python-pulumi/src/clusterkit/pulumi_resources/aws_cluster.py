from __future__ import annotations

import pulumi

import clusterkit
import clusterkit.cluster
import clusterkit.replacement
import clusterkit.tags
from clusterkit.pulumi_resources.aws_cluster_group import ClusterGroup, define_cluster_group
from clusterkit.pulumi_resources.aws_cluster_identity import (
    IdentityRef,
    PolicyBinder,
    define_auto_join_policy,
    define_cluster_identity,
    instance_profile_name,
)
from clusterkit.pulumi_resources.aws_cluster_security_group import (
    RuleSet,
    SecurityPerimeter,
    define_cluster_ingress_rules,
    define_security_perimeter,
)
from clusterkit.pulumi_resources.aws_launch_template import LaunchSpec, define_launch_template
from clusterkit.pulumi_resources.aws_placement import PlacementRef, define_placement_group


def define_cluster_graph(cfg: clusterkit.ClusterConfig) -> clusterkit.replacement.ResourceGraph:
    """Declare the replaceable resources of a cluster and how they depend on each other.

    The cluster group needs everything below it to be created before it is
    destroyed, so the requirement is pushed down the whole chain.
    """
    keys = clusterkit.GraphKeys
    graph = clusterkit.replacement.ResourceGraph()

    launch_template_deps = [keys.SECURITY_GROUP]
    if cfg.identity.enabled:
        graph.add(keys.IAM_ROLE)
        graph.add(keys.INSTANCE_PROFILE, [keys.IAM_ROLE])
        launch_template_deps.append(keys.INSTANCE_PROFILE)

    graph.add(keys.SECURITY_GROUP)
    graph.add(keys.SECURITY_GROUP_RULES, [keys.SECURITY_GROUP], immutable=True)

    if cfg.placement.spread_enabled:
        graph.add(keys.PLACEMENT_GROUP)
        launch_template_deps.append(keys.PLACEMENT_GROUP)

    graph.add(keys.LAUNCH_TEMPLATE, launch_template_deps, immutable=True)
    graph.add(keys.CLUSTER_GROUP, [keys.LAUNCH_TEMPLATE])
    graph.require_create_before_destroy(keys.CLUSTER_GROUP)

    return graph


class AWSCluster(pulumi.ComponentResource):
    """
    A fixed-size, self-registering cluster: an Auto Scaling group of identical
    instances sharing one launch template, one security group and (optionally)
    one IAM role and instance profile.

    Instances find each other through the cluster membership tag, so the tag is
    always present and always propagated to instances.

    :param cfg: the cluster configuration; validated before any resource is declared
    :param rule_set: creates the cluster protocol ingress rules; defaults to
    `define_cluster_ingress_rules`
    :param policy_binder: attaches permission policies to the cluster role;
    defaults to `define_auto_join_policy`
    :param validate: set to False when `cfg` was already validated, as `autoload` does
    """

    cfg: clusterkit.ClusterConfig
    graph: clusterkit.replacement.ResourceGraph
    tag_set: list[clusterkit.ClusterTag]
    required_tags: dict[str, str]

    identity: IdentityRef
    security_perimeter: SecurityPerimeter
    placement: PlacementRef
    launch_spec: LaunchSpec
    cluster_group: ClusterGroup

    @classmethod
    def autoload(cls) -> AWSCluster:
        # ClusterDefinition has already validated the loaded config.
        return cls(cfg=clusterkit.cluster.ClusterDefinition(pulumi.get_stack()).cfg, validate=False)

    def __init__(
        self,
        cfg: clusterkit.ClusterConfig,
        rule_set: RuleSet = define_cluster_ingress_rules,
        policy_binder: PolicyBinder = define_auto_join_policy,
        *args,
        validate: bool = True,
        **kwargs,
    ):
        if validate:
            try:
                clusterkit.cluster.validate_cluster_config(cfg)
            except ValueError as e:
                pulumi.log.error(f"Invalid cluster configuration for {cfg.name!r}: {e}")
                raise

        super().__init__(
            f"clusterkit:{self.__class__.__name__}",
            cfg.name,
            *args,
            **kwargs,
        )

        self.cfg = cfg
        self.rule_set = rule_set
        self.policy_binder = policy_binder
        self.graph = define_cluster_graph(cfg)

        self.tag_set = clusterkit.tags.merge_tags(
            name=cfg.name,
            cluster_tag_key=cfg.cluster_tag_key,
            cluster_tag_value=cfg.membership_tag_value,
            tags=cfg.tags,
        )
        self.required_tags = clusterkit.tags.as_resource_tags(self.tag_set, cfg.name) | {
            str(clusterkit.TagKeys.CLUSTERKIT_MANAGED_BY): __name__,
        }

        self._define_identity()
        self._define_security_perimeter()
        self._define_placement()
        self._define_launch_template()
        self._define_cluster_group()

        pulumi.log.info(f"Declared cluster {cfg.name!r} with {cfg.size} instance(s)", self)

        outputs: dict[str, pulumi.Input[str] | int] = {
            "cluster_group_name": self.cluster_group.name,
            "cluster_size": cfg.size,
            "launch_template_id": self.launch_spec.id,
            "security_group_id": self.security_perimeter.security_group_id,
            "instance_profile_name": instance_profile_name(self.identity),
        }
        if isinstance(self.identity, clusterkit.Enabled):
            outputs["iam_role_arn"] = self.identity.value.role.arn
            outputs["iam_role_name"] = self.identity.value.role.name

        self.register_outputs(outputs)

    def _opts(self) -> pulumi.ResourceOptions:
        return pulumi.ResourceOptions(parent=self)

    def _define_identity(self):
        self.identity = define_cluster_identity(
            name=self.cfg.name,
            identity=self.cfg.identity,
            region=self.cfg.region,
            tags=self.required_tags,
            graph=self.graph,
            opts=self._opts(),
            policy_binder=self.policy_binder,
        )

    def _define_security_perimeter(self):
        self.security_perimeter = define_security_perimeter(
            name=self.cfg.name,
            vpc_id=self.cfg.vpc_id,
            ssh=self.cfg.ssh,
            ports=self.cfg.ports,
            allowed_inbound_cidr_blocks=self.cfg.allowed_inbound_cidr_blocks,
            allowed_inbound_security_group_ids=self.cfg.allowed_inbound_security_group_ids,
            tags=self.required_tags,
            graph=self.graph,
            opts=self._opts(),
            rule_set=self.rule_set,
        )

    def _define_placement(self):
        self.placement = define_placement_group(
            name=self.cfg.name,
            enabled=self.cfg.placement.spread_enabled,
            tags=self.required_tags,
            graph=self.graph,
            opts=self._opts(),
        )

    def _define_launch_template(self):
        self.launch_spec = define_launch_template(
            cfg=self.cfg,
            security_group_id=self.security_perimeter.security_group_id,
            instance_profile_name=instance_profile_name(self.identity),
            placement=self.placement,
            tags=self.required_tags,
            graph=self.graph,
            opts=self._opts(),
        )

    def _define_cluster_group(self):
        self.cluster_group = define_cluster_group(
            cfg=self.cfg,
            launch_spec=self.launch_spec,
            tag_set=self.tag_set,
            graph=self.graph,
            opts=self._opts(),
        )

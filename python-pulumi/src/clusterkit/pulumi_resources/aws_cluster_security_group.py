from __future__ import annotations

import dataclasses
import typing

import pulumi
import pulumi_aws as aws

import clusterkit

if typing.TYPE_CHECKING:
    import clusterkit.replacement

TCP = "tcp"
UDP = "udp"


@dataclasses.dataclass(frozen=True)
class IngressRuleSpec:
    """One ingress rule, with exactly one kind of source."""

    suffix: str
    protocol: str
    port: int
    cidr_blocks: list[str] | None = None
    source_security_group_id: str | None = None
    self_: bool = False
    description: str | None = None


@dataclasses.dataclass(frozen=True)
class ClusterRuleInputs:
    security_group_id: pulumi.Output[str] | str
    ports: clusterkit.ClusterPorts
    allowed_inbound_cidr_blocks: list[str]
    allowed_inbound_security_group_ids: list[str]


@dataclasses.dataclass(frozen=True)
class SecurityPerimeter:
    security_group: aws.ec2.SecurityGroup
    egress_rule: aws.ec2.SecurityGroupRule
    ssh_rules: list[aws.ec2.SecurityGroupRule]
    cluster_rules: list[aws.ec2.SecurityGroupRule]

    @property
    def security_group_id(self) -> pulumi.Output[str]:
        return self.security_group.id


RuleSet = typing.Callable[[str, ClusterRuleInputs, pulumi.ResourceOptions], list[aws.ec2.SecurityGroupRule]]


def _unique(ids: list[str]) -> list[str]:
    # Rule names are derived from the id, so a repeated id would register the same resource twice.
    return list(dict.fromkeys(ids))


def ssh_ingress_rule_specs(ssh: clusterkit.SshConfig) -> list[IngressRuleSpec]:
    """SSH rules only exist for sources that were asked for; no input means no rule."""
    specs: list[IngressRuleSpec] = []

    if ssh.allowed_cidr_blocks:
        specs.append(
            IngressRuleSpec(
                suffix="ssh-cidr",
                protocol=TCP,
                port=ssh.port,
                cidr_blocks=list(ssh.allowed_cidr_blocks),
                description="SSH from allowed CIDR blocks",
            )
        )

    # A rule takes a single source security group, so each peer gets its own rule.
    for sg_id in _unique(ssh.allowed_security_group_ids):
        specs.append(
            IngressRuleSpec(
                suffix=f"ssh-{sg_id}",
                protocol=TCP,
                port=ssh.port,
                source_security_group_id=sg_id,
                description=f"SSH from {sg_id}",
            )
        )

    return specs


def cluster_ingress_rule_specs(
    ports: clusterkit.ClusterPorts,
    allowed_inbound_cidr_blocks: list[str],
    allowed_inbound_security_group_ids: list[str],
) -> list[IngressRuleSpec]:
    protocol_ports = [
        ("server-rpc", TCP, ports.server_rpc),
        ("serf-lan-tcp", TCP, ports.serf_lan),
        ("serf-lan-udp", UDP, ports.serf_lan),
        ("serf-wan-tcp", TCP, ports.serf_wan),
        ("serf-wan-udp", UDP, ports.serf_wan),
        ("cli-rpc", TCP, ports.cli_rpc),
        ("http-api", TCP, ports.http_api),
        ("dns-tcp", TCP, ports.dns),
        ("dns-udp", UDP, ports.dns),
    ]

    specs: list[IngressRuleSpec] = []
    for label, protocol, port in protocol_ports:
        specs.append(IngressRuleSpec(suffix=f"{label}-self", protocol=protocol, port=port, self_=True))

        if allowed_inbound_cidr_blocks:
            specs.append(
                IngressRuleSpec(
                    suffix=f"{label}-cidr",
                    protocol=protocol,
                    port=port,
                    cidr_blocks=list(allowed_inbound_cidr_blocks),
                )
            )

        for sg_id in _unique(allowed_inbound_security_group_ids):
            specs.append(
                IngressRuleSpec(
                    suffix=f"{label}-{sg_id}",
                    protocol=protocol,
                    port=port,
                    source_security_group_id=sg_id,
                )
            )

    return specs


def _define_ingress_rule(
    name: str,
    security_group_id: pulumi.Output[str] | str,
    spec: IngressRuleSpec,
    opts: pulumi.ResourceOptions,
) -> aws.ec2.SecurityGroupRule:
    return aws.ec2.SecurityGroupRule(
        f"{name}-{spec.suffix}",
        type="ingress",
        protocol=spec.protocol,
        from_port=spec.port,
        to_port=spec.port,
        security_group_id=security_group_id,
        cidr_blocks=spec.cidr_blocks,
        source_security_group_id=spec.source_security_group_id,
        self=spec.self_ or None,
        description=spec.description,
        opts=opts,
    )


def define_cluster_ingress_rules(
    name: str,
    inputs: ClusterRuleInputs,
    opts: pulumi.ResourceOptions,
) -> list[aws.ec2.SecurityGroupRule]:
    """Default rule set for the cluster protocol ports."""
    specs = cluster_ingress_rule_specs(
        inputs.ports,
        inputs.allowed_inbound_cidr_blocks,
        inputs.allowed_inbound_security_group_ids,
    )
    return [_define_ingress_rule(name, inputs.security_group_id, spec, opts) for spec in specs]


def define_security_perimeter(
    name: str,
    vpc_id: str | pulumi.Output[str],
    ssh: clusterkit.SshConfig,
    ports: clusterkit.ClusterPorts,
    allowed_inbound_cidr_blocks: list[str],
    allowed_inbound_security_group_ids: list[str],
    tags: dict[str, str],
    graph: clusterkit.replacement.ResourceGraph,
    opts: pulumi.ResourceOptions | None = None,
    rule_set: RuleSet = define_cluster_ingress_rules,
) -> SecurityPerimeter:
    if opts is None:
        opts = pulumi.ResourceOptions()

    security_group = aws.ec2.SecurityGroup(
        name,
        name_prefix=f"{name}-",
        description=f"Security group for the {name} cluster",
        vpc_id=vpc_id,
        tags=tags,
        opts=pulumi.ResourceOptions.merge(opts, graph.options(clusterkit.GraphKeys.SECURITY_GROUP)),
    )

    rule_opts = pulumi.ResourceOptions.merge(
        pulumi.ResourceOptions(parent=security_group),
        graph.options(clusterkit.GraphKeys.SECURITY_GROUP_RULES),
    )

    egress_rule = aws.ec2.SecurityGroupRule(
        f"{name}-egress-all",
        type="egress",
        protocol=clusterkit.ALL_PROTOCOLS,
        from_port=0,
        to_port=0,
        cidr_blocks=[clusterkit.ANYWHERE_CIDR],
        security_group_id=security_group.id,
        description="Allow all outbound",
        opts=rule_opts,
    )

    ssh_rules = [_define_ingress_rule(name, security_group.id, spec, rule_opts) for spec in ssh_ingress_rule_specs(ssh)]
    if not ssh_rules:
        pulumi.log.debug(f"{name}: no SSH sources configured, SSH ingress not opened")

    cluster_rules = rule_set(
        name,
        ClusterRuleInputs(
            security_group_id=security_group.id,
            ports=ports,
            allowed_inbound_cidr_blocks=list(allowed_inbound_cidr_blocks),
            allowed_inbound_security_group_ids=list(allowed_inbound_security_group_ids),
        ),
        rule_opts,
    )

    return SecurityPerimeter(
        security_group=security_group,
        egress_rule=egress_rule,
        ssh_rules=ssh_rules,
        cluster_rules=cluster_rules,
    )

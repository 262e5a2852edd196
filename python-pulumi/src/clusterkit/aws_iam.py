from __future__ import annotations

import typing

EC2_SERVICE_PRINCIPAL = "ec2.amazonaws.com"
EC2_SERVICE_PRINCIPAL_CHINA = "ec2.amazonaws.com.cn"
CHINA_REGION_PREFIX = "cn-"

AUTO_JOIN_ACTIONS = [
    "autoscaling:DescribeAutoScalingGroups",
    "ec2:DescribeInstances",
    "ec2:DescribeTags",
]


def ec2_service_principal(region: str) -> str:
    """
    :param region: the AWS region the cluster is deployed into, eg: us-east-1 or cn-north-1
    :return: the EC2 service principal that may assume the cluster role in that region
    """
    if region.startswith(CHINA_REGION_PREFIX):
        return EC2_SERVICE_PRINCIPAL_CHINA

    return EC2_SERVICE_PRINCIPAL


def build_assume_role_policy(principal: str) -> dict[str, typing.Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": "sts:AssumeRole",
                "Principal": {"Service": principal},
            }
        ],
    }


def build_auto_join_policy() -> dict[str, typing.Any]:
    # Describe calls do not support resource-level permissions.
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": AUTO_JOIN_ACTIONS,
                "Resource": "*",
            }
        ],
    }

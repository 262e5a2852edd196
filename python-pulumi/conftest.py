"""Shared pytest fixtures for clusterkit tests.

This module provides common fixtures used across test files:
- clusterkit_root: Sets CLUSTERKIT_ROOT environment variable
- cluster_config: A valid ClusterConfig with sensible defaults
- write_cluster_yaml: Writes a cluster.yaml definition under CLUSTERKIT_ROOT
"""

import pathlib
import typing

import pytest
import yaml

import clusterkit

# ============================================================================
# Environment Setup Fixtures
# ============================================================================


@pytest.fixture
def clusterkit_root(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> pathlib.Path:
    """Set CLUSTERKIT_ROOT environment variable to a temporary directory.

    Required for any test that loads cluster definitions or uses the Paths
    class.

    Usage:
        def test_something(clusterkit_root):
            paths = Paths()
            assert paths.root == clusterkit_root
    """
    monkeypatch.setenv("CLUSTERKIT_ROOT", str(tmp_path))
    return tmp_path


# ============================================================================
# Cluster Configuration Fixtures
# ============================================================================


@pytest.fixture
def cluster_config() -> clusterkit.ClusterConfig:
    """A valid three node cluster in us-east-1 with identity management enabled.

    Usage:
        def test_something(cluster_config):
            cfg = dataclasses.replace(cluster_config, size=5)
    """
    return clusterkit.ClusterConfig(
        name="demo",
        region="us-east-1",
        vpc_id="vpc-0123456789abcdef0",
        ami_id="ami-0123456789abcdef0",
        size=3,
        instance_type="t3.medium",
        key_name="demo-key",
        user_data="#!/bin/bash\necho hello\n",
        subnet_ids=["subnet-aaaa", "subnet-bbbb", "subnet-cccc"],
        tags=[clusterkit.ClusterTag(key="team", value="platform")],
    )


@pytest.fixture
def write_cluster_yaml(clusterkit_root: pathlib.Path) -> typing.Callable[[str, dict[str, typing.Any]], pathlib.Path]:
    """Write `{"spec": spec}` to clusters/<name>/cluster.yaml under CLUSTERKIT_ROOT."""

    def _write(name: str, spec: dict[str, typing.Any]) -> pathlib.Path:
        d = clusterkit_root / "clusters" / name
        d.mkdir(parents=True, exist_ok=True)
        path = d / "cluster.yaml"
        path.write_text(yaml.safe_dump({"spec": spec}))
        return path

    return _write

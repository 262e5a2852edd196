from __future__ import annotations

import os
import pathlib


class Paths:
    @property
    def root(self) -> pathlib.Path:
        """Return the cluster definitions directory.

        Set via the CLUSTERKIT_ROOT environment variable before running a
        Pulumi stack that calls `AWSCluster.autoload`.

        Raises:
            RuntimeError: If CLUSTERKIT_ROOT is not set in the environment

        """
        if "CLUSTERKIT_ROOT" not in os.environ:
            msg = "CLUSTERKIT_ROOT environment variable not set."
            raise RuntimeError(msg)

        return pathlib.Path(os.environ["CLUSTERKIT_ROOT"])

    @property
    def clusters(self) -> pathlib.Path:
        return self.root / "clusters"

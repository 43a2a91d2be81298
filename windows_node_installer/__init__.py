"""Windows Node Installer - provision Windows instances next to an OpenShift cluster.

Creates (and later destroys) a single Windows EC2 instance inside an existing
cluster's VPC, wired to the cluster's worker security group and IAM instance
profile so it can be joined to the cluster as a worker node.
"""

try:
    from importlib.metadata import version

    __version__ = version("windows-node-installer")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]

"""Version information for cluster-baremetal-operator."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("cluster-baremetal-operator")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0+dev"

"""resource-aggregator: learning-resource aggregation for an AI training chat."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("resource-aggregator")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]

"""PyPI registry package.

This package provides PyPI support for package resolution:
- client.py: async HTTP interactions with the PyPI JSON API
- wheels.py: wheel selection by compatibility tag and archive reading
"""

from .client import PyPIClient, ReleaseInfo
from .wheels import (
    read_metadata_dependencies,
    select_wheel,
    supported_tags,
    wheel_dependencies,
    wheel_members,
)

__all__ = [
    "PyPIClient",
    "ReleaseInfo",
    "read_metadata_dependencies",
    "select_wheel",
    "supported_tags",
    "wheel_dependencies",
    "wheel_members",
]

"""Multi-boot disk provisioning: partition geometry planning and ordered
execution of partitioning, imaging and boot-registration commands."""

from .__version__ import __version__

__all__ = ["__version__"]

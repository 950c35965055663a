"""Source blueprints.

A blueprint fetches one upstream project into a build work dir and
checks out the requested version.
"""

from mason.blueprints.base import Blueprint, Source
from mason.blueprints.openbazaar import OpenBazaarDaemonBlueprint, OpenBazaarSource

__all__ = ["Blueprint", "OpenBazaarDaemonBlueprint", "OpenBazaarSource", "Source"]

"""
mautic-deployer - Idempotent Mautic installation and upgrade tool
"""

__version__ = "1.0.0"

from .core import MauticDeployer
from .errors import DeploymentError

__all__ = ["MauticDeployer", "DeploymentError"]

"""
appserver-testenv - containerized application server environments for pytest
"""

__version__ = "0.1.0"

from .core import EnvironmentProvisioner
from .errors import ProvisioningError
from .models import ProvisionedEnvironment
from .registry import ContainerRegistry

__all__ = ["ContainerRegistry", "EnvironmentProvisioner", "ProvisionedEnvironment", "ProvisioningError"]

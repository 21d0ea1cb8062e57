from .base import CommandResult, Environment
from .container import ContainerEnvironment
from .host import HostEnvironment
from .provision import Provisioner

__all__ = ["CommandResult", "Environment", "ContainerEnvironment", "HostEnvironment", "Provisioner"]

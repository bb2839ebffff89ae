"""
The service package.
Lifecycle control of the supervisor's Windows service.
"""
from .scm import ServiceManagerBackend, ServiceState, WindowsServiceManager
from .controller import ServiceController

__all__ = ["ServiceController", "ServiceManagerBackend", "ServiceState", "WindowsServiceManager"]

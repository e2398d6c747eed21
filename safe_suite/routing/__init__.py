"""
Request routing — dispatch operation calls to local or remote modules.
"""

from safe_suite.routing.client import HttpModuleClient
from safe_suite.routing.router import InvocationResult, Router

__all__ = ["HttpModuleClient", "InvocationResult", "Router"]

"""
The Supervisor package.
Manages the lifecycle of the local DPug server process.

This package contains the central ServerSupervisor class and its helper
modules, which together handle probing, locating, launching, waiting for
and stopping the server.
"""
from .supervisor import ServerSupervisor
from .state import LaunchError, ServerEndpoint, ServerState, ServerStatus, StartFailure

__all__ = ['ServerSupervisor', 'LaunchError', 'ServerEndpoint', 'ServerState', 'ServerStatus', 'StartFailure']

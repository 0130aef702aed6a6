"""
Local package for the DPug host.

This package holds the workspace configuration, the server supervisor,
the conversion client and the management console.
"""

from .config import WorkspaceSettings

__all__ = ["WorkspaceSettings"]

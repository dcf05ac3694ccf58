"""Agent Panel - project workspaces for the AeroSpace tiling window manager.

This package provides:
- One editor window and one browser window per project, tagged by title
- A dedicated `ap-<project>` AeroSpace workspace per project
- Staged window discovery that survives slow or misplaced launches
- Screen-aware window layout
- Focus history so closing a project returns you where you were
"""

__version__ = "0.1.0"
__author__ = "agent-panel contributors"
__license__ = "MIT"

__all__ = ["__version__", "__author__", "__license__"]

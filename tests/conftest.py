"""Pytest configuration for agent_panel tests."""

import sys
from pathlib import Path

# Add agent_panel package to Python path BEFORE test collection
repo_root = Path(__file__).parent.parent
package_root = repo_root / "home-modules" / "tools"
for path in (package_root, repo_root):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


def pytest_configure(config):
    """Configure pytest before test collection."""
    # Ensure path is set even earlier
    if str(package_root) not in sys.path:
        sys.path.insert(0, str(package_root))

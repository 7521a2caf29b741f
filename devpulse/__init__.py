"""
DevPulse - Developer productivity and burnout analytics.

Ingests GitHub activity (commits, pull requests, issues and reviews) and serves
personal, team and burnout analytics over a JSON HTTP API.
"""

__version__ = "0.1.0"
__author__ = "DevPulse Team"
__email__ = "team@devpulse.dev"
__description__ = "Developer productivity and burnout analytics"

# Core imports
from .core.config import DevPulseConfig
from .core.logging import setup_logging

# Initialize logging
setup_logging()

__all__ = [
    "__version__",
    "__author__",
    "__email__",
    "__description__",
    "DevPulseConfig",
    "setup_logging",
]

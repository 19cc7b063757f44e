"""
Deploy Hooks: signed webhook receiver that triggers deploy scripts.

The webhook server authenticates callers with HTTP Basic client names and
HMAC-SHA256 body signatures, then hands ``deploy <project>`` commands to a
separate dispatcher process through a command pipe on the data volume.
"""

__version__ = "0.1.0"

from .config import DeployConfig, load_config
from .logging import get_logger, setup_logging

__all__ = ["__version__", "DeployConfig", "load_config", "get_logger", "setup_logging"]

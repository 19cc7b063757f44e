"""HTTP surface of the webhook server."""

from .app import DeployHooksAppBuilder, create_app

__all__ = ["DeployHooksAppBuilder", "create_app"]

"""Webserver config generation and atomic deployment."""

from .deployer import CommandValidator, ConfigDeployer, ConfigValidator, RenderedConfig, ValidationResult
from .nginx import PhpBackend, render_server_block

__all__ = [
    "CommandValidator",
    "ConfigDeployer",
    "ConfigValidator",
    "PhpBackend",
    "RenderedConfig",
    "ValidationResult",
    "render_server_block",
]

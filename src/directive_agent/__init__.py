"""Directive agent: applies directive.ais manifests to a web host."""

__version__ = "1.2.0"

PLATFORM_NAME = "Artisan Platform"

"""Directive manifests: models, discovery and execution markers."""

from .models import Directive
from .store import DirectiveFile, DirectiveStore, deployment_identity, strip_comments
from .tracker import IdempotencyTracker

__all__ = [
    "Directive",
    "DirectiveFile",
    "DirectiveStore",
    "IdempotencyTracker",
    "deployment_identity",
    "strip_comments",
]

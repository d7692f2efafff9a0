"""Backend adapter registry, keyed by detected environment kind."""

from __future__ import annotations

from .base import OPTIONAL_CAPABILITIES, LmsAdapter
from .detector import ENVIRONMENT_KINDS, Environment, EnvironmentDetector
from .local import LocalStorageAdapter
from .scorm12 import Scorm12Adapter
from .scorm2004 import Scorm2004Adapter
from .xapi import XapiAdapter, generate_uuid, normalize_actor

ADAPTER_MAP: dict[str, type[LmsAdapter]] = {
    "scorm2004": Scorm2004Adapter,
    "scorm12": Scorm12Adapter,
    "xapi": XapiAdapter,
    "local": LocalStorageAdapter,
}


def get_adapter(kind: str) -> type[LmsAdapter]:
    """Look up the adapter class for an environment kind, defaulting to local."""
    return ADAPTER_MAP.get(kind.lower(), LocalStorageAdapter)


__all__ = [
    "LmsAdapter",
    "OPTIONAL_CAPABILITIES",
    "ADAPTER_MAP",
    "ENVIRONMENT_KINDS",
    "Environment",
    "EnvironmentDetector",
    "get_adapter",
    "LocalStorageAdapter",
    "Scorm12Adapter",
    "Scorm2004Adapter",
    "XapiAdapter",
    "generate_uuid",
    "normalize_actor",
]

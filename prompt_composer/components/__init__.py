"""
Reusable prompt components.
"""

from .loader import ComponentLoader
from .schema import Component, ComponentError, ComponentNotFoundError

__all__ = [
    "Component",
    "ComponentError",
    "ComponentLoader",
    "ComponentNotFoundError",
]

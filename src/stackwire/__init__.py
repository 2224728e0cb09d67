"""stackwire - Layered configuration resolution and capability binding for infrastructure components."""

__version__ = "0.1.0"

from .models import BindingDirective, ComponentSpec, Manifest, Selector
from .core import build_context, load_manifest, resolve_manifest, write_env_files
from .catalog import create_component_registry
from .strategies import create_binder_registry
from .resolver import ResolverEngine

__all__ = [
    "BindingDirective",
    "ComponentSpec",
    "Manifest",
    "Selector",
    "build_context",
    "load_manifest",
    "resolve_manifest",
    "write_env_files",
    "create_component_registry",
    "create_binder_registry",
    "ResolverEngine",
]

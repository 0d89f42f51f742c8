from .component_registry import REGISTRY_NAME, REGISTRY_VERSION, ComponentRegistry

__all__ = ['ComponentRegistry', 'REGISTRY_NAME', 'REGISTRY_VERSION']

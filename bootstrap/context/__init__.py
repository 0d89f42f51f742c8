from .host_context import CapabilityFlags, HostContext, HostPaths, ServiceProviderHandle

__all__ = ['HostContext', 'HostPaths', 'CapabilityFlags', 'ServiceProviderHandle']

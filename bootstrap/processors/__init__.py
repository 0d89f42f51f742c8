"""Bootstrap processors package initialization."""

from .manifest_processor import FeatureUnitManifest, ManifestProcessor, ServiceProviderManifest

__all__ = ['ManifestProcessor', 'ServiceProviderManifest', 'FeatureUnitManifest']

"""Catalog resolution: sources, metadata readers, and playable units."""

from .ffprobe import FfprobeMetadataReader
from .resolver import SUPPORTED_EXTENSIONS, Catalog, CatalogResolver, MetadataReader

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "Catalog",
    "CatalogResolver",
    "FfprobeMetadataReader",
    "MetadataReader",
]

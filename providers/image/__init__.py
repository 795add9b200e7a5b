"""Image adapters: Flux Pro, Imagen."""

from providers.image.flux import FluxProAdapter
from providers.image.imagen import ImagenAdapter

__all__ = ["FluxProAdapter", "ImagenAdapter"]

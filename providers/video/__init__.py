"""Video adapters: Runway, Veo."""

from providers.video.runway import RunwayAdapter
from providers.video.veo import VeoAdapter

__all__ = ["RunwayAdapter", "VeoAdapter"]

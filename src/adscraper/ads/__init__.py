"""Ad detection, capture and clickthrough."""

from __future__ import annotations

from .chumbox import CHUMBOX_DEFINITIONS, AdHandles, ChumboxDefinition, ChumboxSplit, split_chumbox
from .detection import DetectedAd, identify_ads, load_ad_selectors, remove_nested

__all__ = [
    "AdHandles",
    "CHUMBOX_DEFINITIONS",
    "ChumboxDefinition",
    "ChumboxSplit",
    "DetectedAd",
    "identify_ads",
    "load_ad_selectors",
    "remove_nested",
    "split_chumbox",
]

# External enrichment collaborators
from .geo import GeoIPLookup, HttpGeoIPLookup, StaticGeoIPLookup
from .deep_analysis import (
    DeepAnalyzer,
    HttpDeepAnalyzer,
    PreAuthDerivedAnalyzer,
    build_analysis_payload,
)

__all__ = [
    "GeoIPLookup",
    "HttpGeoIPLookup",
    "StaticGeoIPLookup",
    "DeepAnalyzer",
    "HttpDeepAnalyzer",
    "PreAuthDerivedAnalyzer",
    "build_analysis_payload",
]

"""
Source adapters and the per-cycle collector.
"""

from .adapters import FixtureAdapter, HttpBridgeAdapter, UnconfiguredAdapter, build_source_adapters
from .base import RawSourceResult, SourceAdapter, SourceAdapterError
from .collector import SourceCollector

__all__ = [
    "FixtureAdapter",
    "HttpBridgeAdapter",
    "RawSourceResult",
    "SourceAdapter",
    "SourceAdapterError",
    "SourceCollector",
    "UnconfiguredAdapter",
    "build_source_adapters",
]

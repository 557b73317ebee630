"""
Tiered data acquisition for provider-hosted sports statistics.

Manifest discovery, source resolution with a staleness policy, retrying
governed transport, batch/streaming table decoding with checksums, result
caching with in-flight de-duplication, and a feature-flagged alternate
provider. Consumers use DataAcquisitionService.load_dataset() and
load_merged_by_key(); create_service() wires one from configuration.
"""

from __future__ import annotations

from .alternate import (
    NO_DATA,
    AlternateProviderAdapter,
    AlternateProviderClient,
    extract_first_array,
    first_present,
    probe_candidates,
)
from .base import (
    ALL,
    AlternateEndpoints,
    DatasetSpec,
    DecodedTable,
    FilenameExtractor,
    Manifest,
    ManifestEntry,
    MergedDatasetSpec,
    ResolvedSource,
    SourceOrigin,
)
from .cache import ResultCache
from .chain import first_non_empty, first_usable
from .decoder import TableDecoder
from .defaults import create_default_registry, create_service
from .manifest import ManifestDiscovery
from .registry import DatasetRegistry
from .resilience import ConcurrencyGovernor, RetryConfig, resilient_call
from .resolver import SourceResolver, StalenessPolicy
from .sanity import SeasonProgress
from .service import DataAcquisitionService
from .transport import HttpTransport

__all__ = [
    "ALL",
    "NO_DATA",
    "AlternateEndpoints",
    "AlternateProviderAdapter",
    "AlternateProviderClient",
    "ConcurrencyGovernor",
    "DataAcquisitionService",
    "DatasetRegistry",
    "DatasetSpec",
    "DecodedTable",
    "FilenameExtractor",
    "HttpTransport",
    "Manifest",
    "ManifestDiscovery",
    "ManifestEntry",
    "MergedDatasetSpec",
    "ResolvedSource",
    "ResultCache",
    "RetryConfig",
    "SeasonProgress",
    "SourceOrigin",
    "SourceResolver",
    "StalenessPolicy",
    "TableDecoder",
    "create_default_registry",
    "create_service",
    "extract_first_array",
    "first_non_empty",
    "first_present",
    "first_usable",
    "probe_candidates",
    "resilient_call",
]

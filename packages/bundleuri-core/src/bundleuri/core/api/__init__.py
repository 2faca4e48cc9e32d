"""Public, stable API surface for bundleuri.

If you're integrating bundleuri into your own tooling, import from
**`bundleuri.core.api`**.

Everything outside this package is considered internal and may change without
notice, even in minor releases.
"""

from __future__ import annotations

# Bundle lists
from bundleuri.core.bundle_list import BundleList, BundleMode, RemoteBundleInfo, bundle_list_update
from bundleuri.core.manifest import load_bundle_list, parse_key_values, print_bundle_list
# Fetch pipeline
from bundleuri.core.fetch import fetch_bundle, fetch_bundle_uri
from bundleuri.core.repository import Repository
# Common exceptions
from bundleuri.core.exception import (
    BundleURIError,
    IngestError,
    InsufficientCapabilitiesError,
    NotABundleError,
    RefUpdateError,
    TransportError,
)
# Transports
from bundleuri.core.registry.transports import get_transport, list_transports, register_transport
from bundleuri.core.transports.base import Transport
# Settings
from bundleuri.core.runtime.settings import Settings, load_settings
# Results
from bundleuri.core.spec import BundleFetchResult, RefUpdate

__all__ = [
    # bundle lists
    "BundleList",
    "BundleMode",
    "RemoteBundleInfo",
    "bundle_list_update",
    "parse_key_values",
    "load_bundle_list",
    "print_bundle_list",
    # fetch
    "Repository",
    "fetch_bundle_uri",
    "fetch_bundle",
    "BundleFetchResult",
    "RefUpdate",
    # errors
    "BundleURIError",
    "TransportError",
    "InsufficientCapabilitiesError",
    "NotABundleError",
    "IngestError",
    "RefUpdateError",
    # transports
    "Transport",
    "register_transport",
    "get_transport",
    "list_transports",
    # settings
    "Settings",
    "load_settings",
]

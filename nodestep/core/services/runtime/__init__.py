"""
Node.js runtime provisioning.

    resolve_platform → build_descriptor → Downloader → Extractor → RuntimeHandle

``RuntimeProvisioner`` drives the whole chain.
"""

from nodestep.core.services.runtime.cache import cache_status, clear_cache
from nodestep.core.services.runtime.download import Downloader, file_sha256, parse_shasums
from nodestep.core.services.runtime.extract import Extractor, locate_runtime
from nodestep.core.services.runtime.platform import (
    archive_format_for,
    build_descriptor,
    resolve_platform,
)
from nodestep.core.services.runtime.provisioner import RuntimeProvisioner, detect_version

__all__ = [
    "Downloader",
    "Extractor",
    "RuntimeProvisioner",
    "archive_format_for",
    "build_descriptor",
    "cache_status",
    "clear_cache",
    "detect_version",
    "file_sha256",
    "locate_runtime",
    "parse_shasums",
    "resolve_platform",
]

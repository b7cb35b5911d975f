"""Collectors for the external facts the audit consumes."""

from .controlplane import ControlPlaneLoader, MySQLClient, PoolResolver, detect_host
from .discovery import DirectoryScanner, DiscoveredFile
from .hypervisor import VirshDomainMapper
from .inspector import ImageInspection, ImageInspector, NullInspector, QemuImgInspector

__all__ = [
    "ControlPlaneLoader",
    "DirectoryScanner",
    "DiscoveredFile",
    "ImageInspection",
    "ImageInspector",
    "MySQLClient",
    "NullInspector",
    "PoolResolver",
    "QemuImgInspector",
    "VirshDomainMapper",
    "detect_host",
]

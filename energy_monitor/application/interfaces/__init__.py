# Application Interfaces - ports implemented outside the core

from .vendor_client import RawInterval, VendorClient

__all__ = [
    "RawInterval",
    "VendorClient",
]

"""Remote report service client."""

from reportcore.service.client import ServiceClient

__all__ = [
    "ServiceClient",
]

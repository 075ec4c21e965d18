"""
Fulfilment Service Clients

HTTP clients for the peer services fulfilment depends on.
"""

from .document_client import DocumentClient, DocumentRenderError
from .notification_client import NotificationClient

__all__ = [
    "DocumentClient",
    "DocumentRenderError",
    "NotificationClient",
]

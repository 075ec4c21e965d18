"""
Fulfilment Service Routes Registry
Defines all API routes and service metadata
"""

from typing import Any, Dict

SERVICE_ROUTES = [
    {
        "path": "/health",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Service health check"
    },
    # Provider webhooks (authenticated by provider credential, not platform auth)
    {
        "path": "/api/v1/fulfilment/webhooks/printful",
        "methods": ["GET", "POST"],
        "auth_required": False,
        "description": "Printful webhook receiver"
    },
    {
        "path": "/api/v1/fulfilment/webhooks/blurb",
        "methods": ["GET", "POST"],
        "auth_required": False,
        "description": "Blurb webhook receiver"
    },
    # Routing & status
    {
        "path": "/api/v1/fulfilment/orders/{order_id}/route",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Route order to providers"
    },
    {
        "path": "/api/v1/fulfilment/orders/{order_id}/status",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Order fulfilment status"
    },
    {
        "path": "/api/v1/fulfilment/items/{item_id}/retry",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Retry failed item"
    },
    {
        "path": "/api/v1/fulfilment/providers",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Configured providers"
    },
]


def get_route_summary() -> Dict[str, Any]:
    """Compact route metadata reported by the health endpoint"""
    webhook_routes = [r for r in SERVICE_ROUTES if "/webhooks/" in r["path"]]
    return {
        "route_count": len(SERVICE_ROUTES),
        "base_path": "/api/v1/fulfilment",
        "webhooks": len(webhook_routes),
        "public_count": sum(1 for r in SERVICE_ROUTES if not r["auth_required"]),
        "protected_count": sum(1 for r in SERVICE_ROUTES if r["auth_required"]),
    }


SERVICE_METADATA = {
    "service_name": "fulfilment_service",
    "version": "1.0.0",
    "tags": ["v1", "fulfilment", "print-on-demand", "webhooks"],
    "capabilities": [
        "order_routing",
        "provider_webhooks",
        "status_aggregation",
        "fulfilment_retry",
    ]
}

"""
FastAPI collection service.

Provides:
- POST /webhooks/github - Signed GitHub webhook ingress
- GET /ris/metrics/{owner}/{repo} - Derived metrics
- /ris/* operator endpoints
- GET /health - Service health check
"""

from ris_collector.api.app import create_app

__all__ = ["create_app"]

"""Stashbox: shareable clipboards, link categories and commands.

Subpackages:
  - ``stashbox.app``: FastAPI service (ACL ledger, sharing gateway,
    resource store, public viewer).
  - ``stashbox.sync``: async client that keeps a local copy in step with
    the service.
  - ``stashbox.observability``: structlog logging, Prometheus metrics,
    request middleware.
"""

__version__ = "0.1.0"

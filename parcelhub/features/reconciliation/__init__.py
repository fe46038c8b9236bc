"""
Parcel status reconciliation feature package.

Keeps every layer of the bulk status update flow together: CSV parsing,
the reconciliation engine, upload jobs, the Shopee adapter, persistence
and the API router.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as reconciliation_router  # noqa: F401
from .engine.reconcile import Reconciler, plan_update  # noqa: F401
from .jobs.upload_job import UploadJobRunner  # noqa: F401

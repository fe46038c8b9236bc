"""
Upload job runner and job stores for the reconciliation feature.
"""

from .job_store import InMemoryJobStore, JobNotFoundError, RedisJobStore, build_job_store
from .upload_job import UploadInputError, UploadJobRunner

__all__ = [
    "InMemoryJobStore",
    "JobNotFoundError",
    "RedisJobStore",
    "UploadInputError",
    "UploadJobRunner",
    "build_job_store",
]

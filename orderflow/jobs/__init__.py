"""
Background Jobs Module

Handles scheduled tasks for:
- Authorize.Net settlement checks (held payments -> completed)
"""

from orderflow.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from orderflow.jobs.settlement_jobs import run_settlement_check

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "run_settlement_check",
]

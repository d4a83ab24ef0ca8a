"""
Service contract scheduling and document paths.

- expand_jobs(): one Scheduled job per service visit between the contract's
  start and end dates (inclusive), stepping by the frequency interval.
- nas_job_path(): where a job's documents live on the NAS.
"""

from __future__ import annotations

import re
from datetime import date

from dateutil.relativedelta import relativedelta

from .models import ServiceContract, ServiceJob

FREQUENCY_MONTHS = {
    "Monthly": 1,
    "Quarterly": 3,
    "BiAnnual": 6,
    "Annual": 12,
    "Custom": 12,
}


def visit_dates(start: date, end: date, frequency: str) -> list[date]:
    """
    start, start + n, start + 2n, ... while <= end (n = interval in months).

    Each date is computed from `start` so month-end starts do not drift
    (Jan 31 -> Feb 28 -> Mar 31).
    """
    interval = FREQUENCY_MONTHS.get(frequency, 12)
    dates = []
    step = 0
    current = start
    while current <= end:
        dates.append(current)
        step += 1
        current = start + relativedelta(months=interval * step)
    return dates


def expand_jobs(contract: ServiceContract, assigned_to_id: int | None) -> list[ServiceJob]:
    """Build (not add) the contract's scheduled jobs, assigned to a staff member."""
    project_id = contract.projects[0].id if contract.projects else None
    return [
        ServiceJob(
            contract=contract,
            client_id=contract.client_id,
            project_id=project_id,
            assigned_to_type="Staff",
            assigned_to_id=assigned_to_id,
            scheduled_date=scheduled,
            status="Scheduled",
        )
        for scheduled in visit_dates(contract.start_date, contract.end_date, contract.frequency)
    ]


def _code(value: str | None) -> str:
    return re.sub(r"[^A-Za-z0-9-]", "", value or "").upper()


def nas_job_path(base: str, job: ServiceJob, *parts: str) -> str:
    """
    {base}/Clients/{clientCode}/Projects/{projectCode|NO_PROJECT}/Servicing/Jobs/{jobId}/...
    """
    client = job.client
    client_code = (client.client_number if client and client.client_number else _code(client.name if client else "")) or "UNKNOWN"
    project_code = job.project.project_number if job.project else "NO_PROJECT"
    segments = [
        base.rstrip("/"),
        "Clients",
        client_code,
        "Projects",
        project_code,
        "Servicing",
        "Jobs",
        str(job.id),
        *parts,
    ]
    return "/".join(segments)


def vendor_code(job: ServiceJob) -> str:
    vendor = job.assigned_vendor
    if vendor is None:
        return "VENDOR"
    return vendor.vendor_number or _code(vendor.name) or "VENDOR"

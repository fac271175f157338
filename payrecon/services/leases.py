import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

from tortoise.exceptions import IntegrityError
from tortoise.expressions import Q

from payrecon.core.clock import utcnow
from payrecon.core.config import JOB_LEASE_SECONDS
from payrecon.models.job_lease import JobLease

log = logging.getLogger("payrecon.leases")


async def acquire_job_lease(name: str, owner: str, ttl_seconds: int = JOB_LEASE_SECONDS,
                            now: Optional[datetime] = None) -> bool:
    """
    Claims the job for ``owner`` with a conditional UPDATE, so of two concurrent
    callers exactly one sees a changed row.
    """
    now = now or utcnow()
    try:
        await JobLease.get_or_create(name=name)
    except IntegrityError:
        # Another runner inserted the row first; the UPDATE below decides ownership
        pass

    claimable = Q(owner__isnull=True) | Q(expires_at__isnull=True) | Q(expires_at__lt=now) | Q(owner=owner)
    updated = await JobLease.filter(Q(name=name) & claimable).update(
        owner=owner,
        claimed_at=now,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )
    return updated == 1


async def release_job_lease(name: str, owner: str) -> None:
    await JobLease.filter(name=name, owner=owner).update(owner=None, expires_at=None)


@asynccontextmanager
async def job_lease(name: str, ttl_seconds: int = JOB_LEASE_SECONDS,
                    now: Optional[datetime] = None) -> AsyncIterator[bool]:
    """Yields True when this run owns ``name``; releases the lease on exit."""
    owner = uuid.uuid4().hex
    acquired = await acquire_job_lease(name, owner, ttl_seconds=ttl_seconds, now=now)
    if not acquired:
        log.warning(f"Job '{name}' is leased by another run; skipping.")
    try:
        yield acquired
    finally:
        if acquired:
            await release_job_lease(name, owner)

"""Supplier job routes: status updates, ready marks, courier checks, ratings."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.routes.auth import require_role
from printshop.app.routes.common import STAFF_ROLES, not_found, to_http_exception
from printshop.domain.enums import UserRole
from printshop.domain.errors import PrintShopError
from printshop.domain.models import User
from printshop.domain.schemas import JobCourierConfirm, JobStatusUpdate, RatingRequest, SupplierJobResponse
from printshop.infra.database import get_db
from printshop.services.supplier_jobs import SupplierJobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


async def _check_owner(service: SupplierJobService, user: User, job_id: int) -> None:
    """Suppliers may only touch their own jobs."""
    if user.role != UserRole.SUPPLIER.value:
        return
    job = await service.jobs.get_job(job_id)
    if job is None:
        raise not_found("Job")
    if job.supplier_id != user.id:
        logger.warning("Supplier %s denied access to job %s", user.id, job_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your job")


@router.patch("/{job_id}/status", response_model=SupplierJobResponse)
async def update_job_status(
    job_id: int,
    body: JobStatusUpdate,
    user: User = Depends(require_role(*STAFF_ROLES, "supplier", "courier")),
    db: AsyncSession = Depends(get_db),
):
    service = SupplierJobService(db)
    await _check_owner(service, user, job_id)
    try:
        job = await service.update_job_status(job_id, body.status)
    except PrintShopError as e:
        raise to_http_exception(e)
    if job is None:
        raise not_found("Job")
    return job


@router.post("/{job_id}/ready", response_model=SupplierJobResponse)
async def mark_job_ready(
    job_id: int,
    user: User = Depends(require_role(*STAFF_ROLES, "supplier")),
    db: AsyncSession = Depends(get_db),
):
    """Supplier marks the job finished and ready for pickup."""
    service = SupplierJobService(db)
    await _check_owner(service, user, job_id)
    try:
        job = await service.mark_job_ready(job_id)
    except PrintShopError as e:
        raise to_http_exception(e)
    if job is None:
        raise not_found("Job")
    return job


@router.post("/{job_id}/courier-confirm", response_model=SupplierJobResponse)
async def confirm_job_ready(
    job_id: int,
    body: JobCourierConfirm | None = None,
    user: User = Depends(require_role(*STAFF_ROLES, "courier")),
    db: AsyncSession = Depends(get_db),
):
    """Courier confirms (or disputes) that the job really was ready."""
    confirmed = body.confirmed if body else True
    try:
        job = await SupplierJobService(db).confirm_job_ready(job_id, confirmed)
    except PrintShopError as e:
        raise to_http_exception(e)
    if job is None:
        raise not_found("Job")
    return job


@router.post("/{job_id}/rate", response_model=SupplierJobResponse)
async def rate_job(
    job_id: int,
    body: RatingRequest,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    try:
        job = await SupplierJobService(db).rate_job(job_id, body.rating)
    except PrintShopError as e:
        raise to_http_exception(e)
    if job is None:
        raise not_found("Job")
    return job

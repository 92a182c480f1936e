"""Task endpoints, including proof verification and retries."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile

from questboard.core.config import constants, settings
from questboard.core.errors import BadRequestError
from questboard.core.rate_limiter import rate_limiter
from questboard.domain.create_models import TaskCreate
from questboard.domain.update_models import TaskUpdate
from questboard.interface.auth import get_current_user_id
from questboard.services import retry_service, task_service, verification_service
from questboard.services.verification_service import ProofImage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


async def _read_proof(upload: UploadFile | None) -> ProofImage:
    """Read and validate the upload without buffering more than the size limit allows."""
    if upload is None:
        return verification_service.validate_proof_image(None)
    limit = settings.max_proof_image_bytes
    if upload.size is not None and upload.size > limit:
        raise BadRequestError(f"Image exceeds the {limit} byte limit")
    data = await upload.read(limit + 1)
    image = ProofImage(data=data, media_type=upload.content_type or "", filename=upload.filename)
    return verification_service.validate_proof_image(image)


async def _admit_proof(*, task_id: str, user_id: str, upload: UploadFile | None) -> ProofImage:
    """Validate the upload and task ownership, then charge the rate limit."""
    image = await _read_proof(upload)
    await task_service.get_task(task_id=task_id, owner_id=user_id)
    await rate_limiter.check_verification_rate_limit(user_id)
    return image


@router.get("/retries")
async def get_retry_chances(user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    """Retry chances left this quarter."""
    remaining = await retry_service.remaining_retries(owner_id=user_id)
    return {"success": True, "data": {"retries_remaining": remaining}}


@router.post("/{task_id}/verify")
async def verify_task(
    task_id: str,
    proof_image: UploadFile | None = File(default=None, alias="proofImage"),
    user_id: str = Depends(get_current_user_id),
) -> dict[str, Any]:
    """Submit image proof for a completed task."""
    image = await _admit_proof(task_id=task_id, user_id=user_id, upload=proof_image)
    outcome = await verification_service.verify_task(
        task_id=task_id,
        owner_id=user_id,
        image=image,
    )
    return {"success": True, "data": outcome.model_dump(exclude={"retries_remaining"})}


@router.post("/{task_id}/retry")
async def retry_task(
    task_id: str,
    proof_image: UploadFile | None = File(default=None, alias="proofImage"),
    notes: str | None = Form(default=None),
    user_id: str = Depends(get_current_user_id),
) -> dict[str, Any]:
    """Spend a retry chance to re-verify a completed task."""
    image = await _admit_proof(task_id=task_id, user_id=user_id, upload=proof_image)
    outcome = await retry_service.retry_verification(
        task_id=task_id,
        owner_id=user_id,
        image=image,
        notes=notes,
    )
    return {"success": True, "data": outcome.model_dump()}


@router.post("", status_code=constants.HTTP_CREATED)
async def create_task(body: TaskCreate, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    task = await task_service.create_task(
        owner_id=user_id,
        quest_id=body.quest_id,
        title=body.title,
        description=body.description,
        due_date=body.due_date,
    )
    return {"success": True, "data": task}


@router.get("")
async def list_tasks(quest_id: str | None = None, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    tasks = await task_service.list_tasks(owner_id=user_id, quest_id=quest_id)
    return {"success": True, "data": tasks}


@router.get("/{task_id}")
async def get_task(task_id: str, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    task = await task_service.get_task(task_id=task_id, owner_id=user_id)
    return {"success": True, "data": task}


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    body: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
) -> dict[str, Any]:
    task = await task_service.update_task(task_id=task_id, owner_id=user_id, changes=body)
    return {"success": True, "data": task}


@router.delete("/{task_id}")
async def delete_task(task_id: str, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    await task_service.delete_task(task_id=task_id, owner_id=user_id)
    return {"success": True, "data": {"id": task_id}}

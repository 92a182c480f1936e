"""Task verification: judge proof images and award points."""

import base64
import logging
from dataclasses import dataclass
from typing import Any

from questboard.core import db_client
from questboard.core.config import settings
from questboard.core.errors import BadRequestError, VerificationRejectedError
from questboard.core.logging import log_with_user_context, span
from questboard.domain.task import Task, TaskStatus
from questboard.models.service_models import VerificationOutcome
from questboard.services import quest_service
from questboard.services.verdict_parser import parse_verdict
from questboard.services.vision_classifier import build_verification_prompt, get_classifier


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProofImage:
    """Uploaded proof image as received from the client."""

    data: bytes
    media_type: str
    filename: str | None = None


def validate_proof_image(image: ProofImage | None) -> ProofImage:
    """Reject missing, non-image or oversized uploads.

    Raises:
        BadRequestError: If the upload cannot be sent to the classifier
    """
    if image is None or not image.data:
        raise BadRequestError("No image uploaded")
    if not image.media_type or not image.media_type.startswith("image/"):
        raise BadRequestError("Proof must be an image")
    if len(image.data) > settings.max_proof_image_bytes:
        raise BadRequestError(f"Image exceeds the {settings.max_proof_image_bytes} byte limit")
    return image


def to_data_uri(image: ProofImage) -> str:
    """Encode the image as a data URI for storage in proof_url."""
    encoded = base64.b64encode(image.data).decode("ascii")
    return f"data:{image.media_type};base64,{encoded}"


def compute_award(*, is_main: bool) -> int:
    """Points tariff for an accepted proof."""
    return settings.main_quest_points if is_main else settings.side_quest_points


async def load_task_context(*, task_id: str, owner_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Resolve a task and its parent quest, both scoped to the owner.

    Raises:
        NotFoundError: If either record is absent or owned by someone else
    """
    task = await db_client.get_record(collection="tasks", record_id=task_id, owner_id=owner_id)
    quest = await db_client.get_record(collection="quests", record_id=task["quest_id"], owner_id=owner_id)
    return task, quest


async def classify_proof(*, task: dict[str, Any], image: ProofImage) -> str:
    """Ask the classifier about the proof and return its raw answer if accepted.

    Raises:
        ClassifierUnavailableError: If the model call fails
        VerificationRejectedError: If the answer does not accept the proof
    """
    prompt = build_verification_prompt(title=task["title"], description=task.get("description") or "")
    raw = await get_classifier().classify(image=image.data, media_type=image.media_type, prompt=prompt)

    verdict = parse_verdict(raw)
    if not verdict.accepted:
        logger.info("proof_rejected", extra={"task_id": task["id"]})
        raise VerificationRejectedError("Verification failed", analysis=verdict.raw)
    return verdict.raw


async def verify_task(*, task_id: str, owner_id: str, image: ProofImage | None) -> VerificationOutcome:
    """Verify a completed task from an uploaded proof image.

    Input and ownership are checked before the classifier is called, so a
    request that cannot succeed never pays for inference.

    Args:
        task_id: Task to verify
        owner_id: Authenticated caller
        image: Uploaded proof

    Returns:
        VerificationOutcome with the updated task and awarded points

    Raises:
        BadRequestError: If the image is invalid or the task is not completed and unverified
        NotFoundError: If the task or its quest is not owned by the caller
        ClassifierUnavailableError: If the model call fails
        VerificationRejectedError: If the proof is not accepted (no write happens)
    """
    with span("verification_service.verify_task"):
        proof = validate_proof_image(image)
        task, quest = await load_task_context(task_id=task_id, owner_id=owner_id)

        if task["status"] != TaskStatus.COMPLETED:
            raise BadRequestError("Task must be completed before it can be verified")
        if task["verified"]:
            raise BadRequestError("Task is already verified")

        analysis = await classify_proof(task=task, image=proof)
        points = compute_award(is_main=quest["is_main"])

        updated = await db_client.update_record(
            collection="tasks",
            record_id=task_id,
            owner_id=owner_id,
            data={
                "proof_url": to_data_uri(proof),
                "verified": True,
                "points_awarded": points,
                "verification_notes": analysis,
            },
        )
        log_with_user_context(
            logger, "info", "task_verified", user_id=owner_id, task_id=task_id, points=points, is_main=quest["is_main"]
        )

        await quest_service.refresh_after_task_change(quest_id=quest["id"], owner_id=owner_id)

        return VerificationOutcome(verified=True, points=points, analysis=analysis, task=Task(**updated))

"""Retry service: quota-limited re-verification of completed tasks."""

import logging

from questboard.core import db_client
from questboard.core.config import RetryPointPolicy, settings
from questboard.core.errors import BadRequestError, QuestboardError, QuotaExhaustedError
from questboard.core.logging import log_with_user_context, span
from questboard.domain.quest import current_quarter
from questboard.domain.task import Task, TaskStatus
from questboard.models.service_models import VerificationOutcome
from questboard.services import quest_service
from questboard.services.verification_service import (
    ProofImage,
    classify_proof,
    compute_award,
    load_task_context,
    to_data_uri,
    validate_proof_image,
)


logger = logging.getLogger(__name__)


async def remaining_retries(*, owner_id: str) -> int:
    """Retry chances left this quarter, without consuming any."""
    return await db_client.get_allowance(
        owner_id=owner_id,
        period=current_quarter(),
        initial=settings.retry_allowance_per_quarter,
    )


def compute_retry_award(
    *,
    previous_points: int,
    is_main: bool,
    policy: RetryPointPolicy | None = None,
) -> int:
    """Points for an accepted retry.

    ADDITIVE adds the flat increment to an existing award and falls back to the
    tariff when there is none. RECOMPUTE replaces the award with the tariff.
    """
    policy = policy or settings.retry_point_policy
    if policy == RetryPointPolicy.ADDITIVE and previous_points > 0:
        return previous_points + settings.retry_point_increment
    return compute_award(is_main=is_main)


async def retry_verification(
    *,
    task_id: str,
    owner_id: str,
    image: ProofImage | None,
    notes: str | None = None,
) -> VerificationOutcome:
    """Re-run verification for a completed task, spending one retry chance.

    The chance is refunded if anything fails after it was taken, so a failed
    attempt leaves no trace.

    Raises:
        BadRequestError: If the image is invalid or the task is not completed
        NotFoundError: If the task or its quest is not owned by the caller
        QuotaExhaustedError: If no retry chances are left this quarter
        ClassifierUnavailableError: If the model call fails
        VerificationRejectedError: If the proof is not accepted
    """
    with span("retry_service.retry_verification"):
        proof = validate_proof_image(image)
        task, quest = await load_task_context(task_id=task_id, owner_id=owner_id)
        if task["status"] != TaskStatus.COMPLETED:
            raise BadRequestError("Only completed tasks can be retried")

        period = current_quarter()
        initial = settings.retry_allowance_per_quarter
        remaining = await db_client.consume_allowance(owner_id=owner_id, period=period, initial=initial)
        if remaining is None:
            log_with_user_context(logger, "info", "retry_quota_exhausted", user_id=owner_id, period=period)
            raise QuotaExhaustedError("No retry chances left")

        try:
            analysis = await classify_proof(task=task, image=proof)
            previous = task["points_awarded"] if task["verified"] else 0
            points = compute_retry_award(previous_points=previous, is_main=quest["is_main"])

            updated = await db_client.update_record(
                collection="tasks",
                record_id=task_id,
                owner_id=owner_id,
                data={
                    "proof_url": to_data_uri(proof),
                    "verified": True,
                    "points_awarded": points,
                    "verification_notes": analysis,
                    "retry_notes": notes or None,
                },
            )
        except QuestboardError:
            remaining = await db_client.refund_allowance(owner_id=owner_id, period=period, initial=initial)
            log_with_user_context(
                logger, "info", "retry_refunded", user_id=owner_id, task_id=task_id, remaining=remaining
            )
            raise

        log_with_user_context(
            logger, "info", "task_retried", user_id=owner_id, task_id=task_id, points=points, remaining=remaining
        )

        await quest_service.refresh_after_task_change(quest_id=quest["id"], owner_id=owner_id)

        return VerificationOutcome(
            verified=True,
            points=points,
            analysis=analysis,
            task=Task(**updated),
            retries_remaining=remaining,
        )

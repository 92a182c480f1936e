"""Unit tests for retry_service module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from questboard.core.config import RetryPointPolicy
from questboard.core.errors import (
    BadRequestError,
    ClassifierUnavailableError,
    NotFoundError,
    QuotaExhaustedError,
    VerificationRejectedError,
)
from questboard.services import retry_service
from questboard.services.verification_service import ProofImage
from tests.unit.conftest import OTHER_OWNER_ID, OWNER_ID


PROOF = ProofImage(data=b"\x89PNG retry", media_type="image/png")


def _classifier(**kwargs) -> MagicMock:
    classifier = MagicMock()
    classifier.classify = AsyncMock(**kwargs)
    return classifier


@pytest.fixture
def classifier_yes():
    classifier = _classifier(return_value="##yes## much better screenshot")
    with patch("questboard.services.verification_service.get_classifier", return_value=classifier):
        yield classifier


@pytest.mark.unit
class TestComputeRetryAward:
    def test_additive_adds_increment_to_previous_award(self):
        award = retry_service.compute_retry_award(previous_points=5, is_main=True, policy=RetryPointPolicy.ADDITIVE)
        assert award == 20

    def test_additive_without_previous_award_uses_tariff(self):
        policy = RetryPointPolicy.ADDITIVE
        assert retry_service.compute_retry_award(previous_points=0, is_main=True, policy=policy) == 5
        assert retry_service.compute_retry_award(previous_points=0, is_main=False, policy=policy) == 2

    def test_recompute_replaces_award_with_tariff(self):
        award = retry_service.compute_retry_award(previous_points=20, is_main=False, policy=RetryPointPolicy.RECOMPUTE)
        assert award == 2

    def test_policy_defaults_to_settings(self, monkeypatch):
        monkeypatch.setattr("questboard.services.retry_service.settings.retry_point_policy", RetryPointPolicy.RECOMPUTE)
        assert retry_service.compute_retry_award(previous_points=5, is_main=True) == 5


@pytest.mark.asyncio
class TestRetryVerification:
    async def test_retry_of_verified_task_adds_increment(
        self, patched_db, main_quest, make_completed_task, classifier_yes
    ):
        task = await make_completed_task(main_quest, verified=True, points_awarded=5)

        outcome = await retry_service.retry_verification(
            task_id=task["id"], owner_id=OWNER_ID, image=PROOF, notes="clearer photo"
        )

        assert outcome.points == 20
        assert outcome.retries_remaining == 2
        assert outcome.task.points_awarded == 20
        assert outcome.task.retry_notes == "clearer photo"
        assert outcome.task.verified is True

    async def test_retry_of_unverified_task_uses_tariff(
        self, patched_db, side_quest, make_completed_task, classifier_yes
    ):
        task = await make_completed_task(side_quest)

        outcome = await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert outcome.points == 2

    async def test_updates_same_task_row(self, patched_db, main_quest, make_completed_task, classifier_yes):
        task = await make_completed_task(main_quest)

        outcome = await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert outcome.task.id == task["id"]
        assert len(await patched_db.list_records("tasks", OWNER_ID)) == 1

    async def test_quota_exhausted_after_allowance_spent(
        self, patched_db, main_quest, make_completed_task, classifier_yes
    ):
        task = await make_completed_task(main_quest, verified=True, points_awarded=5)
        for _ in range(3):
            await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)
        before = patched_db.snapshot("tasks", task["id"])

        with pytest.raises(QuotaExhaustedError, match="No retry chances left") as exc_info:
            await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert exc_info.value.status_code == 403
        assert patched_db.snapshot("tasks", task["id"]) == before
        assert classifier_yes.classify.await_count == 3
        assert await retry_service.remaining_retries(owner_id=OWNER_ID) == 0

    async def test_rejection_refunds_allowance(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest)
        classifier = _classifier(return_value="##no## still blurry")

        with (
            patch("questboard.services.verification_service.get_classifier", return_value=classifier),
            pytest.raises(VerificationRejectedError),
        ):
            await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert await retry_service.remaining_retries(owner_id=OWNER_ID) == 3

    async def test_classifier_failure_refunds_allowance(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest)
        classifier = _classifier(side_effect=ClassifierUnavailableError("down"))

        with (
            patch("questboard.services.verification_service.get_classifier", return_value=classifier),
            pytest.raises(ClassifierUnavailableError),
        ):
            await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert await retry_service.remaining_retries(owner_id=OWNER_ID) == 3

    async def test_foreign_task_consumes_nothing(self, patched_db, main_quest, make_completed_task, classifier_yes):
        task = await make_completed_task(main_quest)

        with pytest.raises(NotFoundError):
            await retry_service.retry_verification(task_id=task["id"], owner_id=OTHER_OWNER_ID, image=PROOF)

        classifier_yes.classify.assert_not_called()
        assert await retry_service.remaining_retries(owner_id=OTHER_OWNER_ID) == 3

    async def test_task_must_be_completed(self, patched_db, main_quest, make_completed_task, classifier_yes):
        task = await make_completed_task(main_quest, status="pending", completed_at=None)

        with pytest.raises(BadRequestError):
            await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert await retry_service.remaining_retries(owner_id=OWNER_ID) == 3

    async def test_allowance_is_per_user(self, patched_db, main_quest, make_completed_task, classifier_yes):
        task = await make_completed_task(main_quest)
        await retry_service.retry_verification(task_id=task["id"], owner_id=OWNER_ID, image=PROOF)

        assert await retry_service.remaining_retries(owner_id=OWNER_ID) == 2
        assert await retry_service.remaining_retries(owner_id=OTHER_OWNER_ID) == 3

from __future__ import annotations

from dataclasses import dataclass
import logging

from activity_responses.domain.attachments import AttachmentCoordinator
from activity_responses.domain.contracts import FileStorageClient, SubmissionRepository
from activity_responses.domain.duplicate_guard import has_existing_submission
from activity_responses.domain.errors import DuplicateSubmission, InvalidSubmission, NotFound, Unauthorized
from activity_responses.domain.grading import grade_submission, list_graded_by
from activity_responses.domain.identity import (
    IdentityClaims,
    Principal,
    ResolvedIdentity,
    parse_identity,
    resolve_display_name,
    resolve_grader,
    resolve_identity,
)
from activity_responses.domain.models import AttachmentState, NewSubmission, SubmissionSnapshot

COMPONENT_ID = "domain.submission.service"
logger = logging.getLogger("activity_responses")


@dataclass(frozen=True)
class SubmissionService:
    repository: SubmissionRepository
    storage: FileStorageClient

    @property
    def attachments(self) -> AttachmentCoordinator:
        return AttachmentCoordinator(repository=self.repository, storage=self.storage)

    async def create_submission(
        self,
        *,
        activity_id: int,
        claims: IdentityClaims,
        student_name: str | None,
        principal: Principal | None = None,
    ) -> SubmissionSnapshot:
        draft = await self._prepare(
            activity_id=activity_id,
            claims=claims,
            student_name=student_name,
            principal=principal,
            attachment_state=AttachmentState.NONE,
        )
        created = await self.repository.insert(draft)
        logger.info(
            "submission created",
            extra={"submission_id": created.submission_id, "activity_id": activity_id},
        )
        return created

    async def create_submission_with_file(
        self,
        *,
        activity_id: int,
        claims: IdentityClaims,
        student_name: str | None,
        payload: bytes,
        filename: str,
        principal: Principal | None = None,
    ) -> SubmissionSnapshot:
        """Stage the row, upload the file, then link it.

        The staged row claims the (activity, identity) slot before anything is
        uploaded; if the upload or the link fails the row is removed again so
        the student can retry.
        """
        if not payload:
            raise InvalidSubmission("attached file is empty")
        draft = await self._prepare(
            activity_id=activity_id,
            claims=claims,
            student_name=student_name,
            principal=principal,
            attachment_state=AttachmentState.PENDING,
        )
        staged = await self.repository.insert(draft)
        try:
            await self.attachments.attach(staged, payload, filename or "submission.bin")
        except Exception:
            logger.warning(
                "attachment failed, discarding staged submission",
                extra={"submission_id": staged.submission_id, "activity_id": activity_id},
            )
            await self._discard_staged(staged)
            raise

        finalized = await self.repository.get(staged.submission_id)
        if finalized is None:
            raise NotFound(f"submission {staged.submission_id} not found")
        logger.info(
            "submission created with attachment",
            extra={"submission_id": finalized.submission_id, "activity_id": activity_id},
        )
        return finalized

    async def grade(
        self,
        *,
        submission_id: int,
        value: object,
        principal: Principal | None = None,
    ) -> SubmissionSnapshot:
        grader_name, grader_id = resolve_grader(principal)
        return await grade_submission(
            self.repository,
            submission_id=submission_id,
            value=value,
            grader_name=grader_name,
            grader_id=grader_id,
        )

    async def get(self, submission_id: int) -> SubmissionSnapshot:
        submission = await self.repository.get(submission_id)
        if submission is None:
            raise NotFound(f"submission {submission_id} not found")
        return submission

    async def list_for_activity(self, activity_id: int) -> list[SubmissionSnapshot]:
        return await self.repository.list_by_activity(activity_id)

    async def list_for_identity(self, raw_identity: str | int) -> list[SubmissionSnapshot]:
        return await self.repository.list_by_student_identity(parse_identity(raw_identity))

    async def list_for_activity_and_identity(
        self,
        activity_id: int,
        raw_identity: str | int,
    ) -> list[SubmissionSnapshot]:
        identity = parse_identity(raw_identity)
        rows = await self.repository.list_by_activity(activity_id)
        return [row for row in rows if row.identity.matches(identity)]

    async def list_for_principal(
        self,
        principal: Principal | None,
        activity_id: int | None = None,
    ) -> list[SubmissionSnapshot]:
        if principal is None or principal.user_id is None:
            raise Unauthorized("a verified bearer token is required")
        if activity_id is not None:
            return await self.list_for_activity_and_identity(activity_id, principal.user_id)
        return await self.list_for_identity(principal.user_id)

    async def list_graded_by(self, grader_id: str) -> list[SubmissionSnapshot]:
        return await list_graded_by(self.repository, grader_id)

    async def download_attachment(self, submission_id: int) -> bytes:
        submission = await self.get(submission_id)
        return await self.attachments.download(submission)

    async def delete(self, submission_id: int) -> None:
        submission = await self.get(submission_id)
        deleted = await self.repository.delete(submission_id)
        if not deleted:
            raise NotFound(f"submission {submission_id} not found")
        logger.info(
            "submission deleted",
            extra={"submission_id": submission_id, "activity_id": submission.activity_id},
        )
        if submission.attachment_ref is not None:
            await self.attachments.detach(submission.attachment_ref, submission=submission)

    async def _prepare(
        self,
        *,
        activity_id: int,
        claims: IdentityClaims,
        student_name: str | None,
        principal: Principal | None,
        attachment_state: AttachmentState,
    ) -> NewSubmission:
        # Identity and name problems are rejected before any read or write.
        resolved: ResolvedIdentity = resolve_identity(claims, principal)
        name = resolve_display_name(student_name, principal)

        if await has_existing_submission(self.repository, activity_id, resolved.slots.identities()):
            logger.warning(
                "duplicate submission rejected",
                extra={"activity_id": activity_id, "error_code": DuplicateSubmission.code},
            )
            raise DuplicateSubmission("student has already submitted a response for this activity")

        return NewSubmission(
            activity_id=activity_id,
            identity=resolved.slots,
            student_name=name,
            attachment_state=attachment_state,
        )

    async def _discard_staged(self, staged: SubmissionSnapshot) -> None:
        try:
            await self.repository.delete(staged.submission_id)
        except Exception:
            logger.exception(
                "staged submission could not be discarded",
                extra={"submission_id": staged.submission_id, "activity_id": staged.activity_id},
            )

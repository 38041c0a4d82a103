from __future__ import annotations

from dataclasses import dataclass, replace
import logging

from activity_responses.domain.contracts import FileStorageClient, SubmissionRepository
from activity_responses.domain.errors import DomainInvariantError, NotFound
from activity_responses.domain.models import AttachmentState, SubmissionSnapshot

COMPONENT_ID = "domain.submission.attachments"
logger = logging.getLogger("activity_responses")


def _link(submission: SubmissionSnapshot, attachment_ref: str) -> SubmissionSnapshot:
    if submission.attachment_state is not AttachmentState.PENDING or submission.attachment_ref is not None:
        raise DomainInvariantError(f"submission {submission.submission_id} already has an attachment")
    return replace(submission, attachment_ref=attachment_ref, attachment_state=AttachmentState.ATTACHED)


@dataclass(frozen=True)
class AttachmentCoordinator:
    repository: SubmissionRepository
    storage: FileStorageClient

    async def attach(self, submission: SubmissionSnapshot, payload: bytes, filename: str) -> str:
        """Upload the file and link it to a submission staged as pending.

        If the link write fails, the uploaded file is deleted again so it
        does not outlive the failed request.
        """
        if submission.attachment_state is not AttachmentState.PENDING:
            raise DomainInvariantError(f"submission {submission.submission_id} is not awaiting an attachment")

        file_id = await self.storage.upload(payload, filename)
        logger.info(
            "attachment uploaded",
            extra={"submission_id": submission.submission_id, "activity_id": submission.activity_id, "file_id": file_id},
        )
        try:
            await self.repository.update(submission.submission_id, lambda current: _link(current, file_id))
        except Exception:
            logger.exception(
                "attachment link failed, removing uploaded file",
                extra={
                    "submission_id": submission.submission_id,
                    "activity_id": submission.activity_id,
                    "file_id": file_id,
                },
            )
            await self.detach(file_id, submission=submission)
            raise
        return file_id

    async def detach(self, attachment_ref: str, *, submission: SubmissionSnapshot | None = None) -> bool:
        extra: dict[str, object] = {"file_id": attachment_ref}
        if submission is not None:
            extra.update(submission_id=submission.submission_id, activity_id=submission.activity_id)
        try:
            await self.storage.delete(attachment_ref)
        except Exception:
            # The caller's operation must not fail because external storage
            # could not be pruned; the file id is logged for manual cleanup.
            logger.warning("attachment delete failed", extra=extra, exc_info=True)
            return False
        logger.info("attachment deleted", extra=extra)
        return True

    async def download(self, submission: SubmissionSnapshot) -> bytes:
        if submission.attachment_ref is None:
            raise NotFound(f"submission {submission.submission_id} has no attachment")
        return await self.storage.download(submission.attachment_ref)

"""Save grading results for one participant or a whole testing event.

Per participant the pipeline is:
  1. aggregate the item scores
  2. persist the participant record
  3. only if that succeeded: render the result PDF, upload it, point the
     participant at the new URL and add it to the member's documents

Participants of an event run concurrently in one task group. Each task
captures its own outcome, so a failed save never cancels, blocks or rolls
back another participant. There is no retry and no timeout.

A document failure after a successful save keeps the save: the result is
still ok, only the document URL stays as it was.
"""

import asyncio
import datetime
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ..adapters.base import GradingBackend
from .item_scores import ScoreSnapshot, dump_item_scores
from .models import (
    GradeSummary, Participant, ParticipantStatus, ParticipantUpdate, RankTest,
    SchoolInfo, TestingEvent,
)
from .pdf_generator import document_display_name, render_result_pdf, result_filename
from .score_aggregator import aggregate

logger = logging.getLogger(__name__)


@dataclass
class BulkGradeResult:
    participant: Participant
    ok: bool
    percent: int
    status: ParticipantStatus
    summary: GradeSummary | None = None
    document_url: str | None = None
    error: str | None = None


class BulkGradingCoordinator:
    """Runs the save pipeline against a grading backend.

    Args:
        backend: Persistence, upload and document registry collaborators.
        school: School identity printed on result documents.
    """

    def __init__(self, backend: GradingBackend, school: SchoolInfo | None = None):
        self.backend = backend
        self.school = school or SchoolInfo()

    async def grade_one(self, event: TestingEvent, participant: Participant,
                        curriculum: RankTest | None, scores: ScoreSnapshot,
                        manual_override: ParticipantStatus | str | None = None,
                        notes: str | None = None,
                        admin_notes: str | None = None) -> BulkGradeResult:
        """Save one participant's grading and, on success, their result document.

        Without a curriculum the scores are still saved but no document is
        generated.
        """
        summary = aggregate(curriculum, scores, manual_override)
        update = ParticipantUpdate(
            participant_id=participant.id,
            item_scores=dump_item_scores(scores),
            score=summary.percent,
            status=summary.final_status,
            notes=notes,
            admin_notes=admin_notes,
        )
        result = BulkGradeResult(participant=participant, ok=False,
                                 percent=summary.percent, status=summary.final_status,
                                 summary=summary)

        try:
            result.ok = bool(await self.backend.save_participant(event.id, update))
        except Exception as e:
            logger.exception('Saving grades for %s failed', participant.member_name)
            result.error = str(e) or type(e).__name__
            return result
        if not result.ok:
            logger.error('Saving grades for %s was rejected', participant.member_name)
            result.error = 'save rejected'
            return result

        participant.item_scores = update.item_scores
        participant.score = update.score
        participant.status = update.status
        participant.notes = notes
        participant.admin_notes = admin_notes

        if curriculum is not None:
            result.document_url = await self._publish_document(
                event, participant, curriculum, scores, summary)
        return result

    async def grade_all(self, event: TestingEvent, curriculum: RankTest | None,
                        scores_by_participant: Mapping[str, ScoreSnapshot],
                        overrides: Mapping[str, ParticipantStatus | str | None],
                        notes: Mapping[str, str | None] | None = None,
                        admin_notes: Mapping[str, str | None] | None = None,
                        ) -> list[BulkGradeResult]:
        """Grade every participant of an event concurrently.

        Args:
            event: Event whose participants are graded.
            curriculum: Curriculum shared by the participants.
            scores_by_participant: participant_id -> item score snapshot.
            overrides: participant_id -> PASSED/FAILED decision (or None).
            notes: participant_id -> participant-facing notes.
            admin_notes: participant_id -> internal notes.

        Returns:
            One BulkGradeResult per participant, in event order.
        """
        notes = notes or {}
        admin_notes = admin_notes or {}

        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(self._grade_captured(
                    event, p, curriculum,
                    scores_by_participant.get(p.id, {}),
                    overrides.get(p.id),
                    notes.get(p.id, p.notes),
                    admin_notes.get(p.id, p.admin_notes),
                ))
                for p in event.participants
            ]
        results = [t.result() for t in tasks]

        failed = [r for r in results if not r.ok]
        if failed:
            logger.warning('Failed to save grades for %d of %d participant(s): %s',
                           len(failed), len(results),
                           ', '.join(r.participant.member_name for r in failed))
        return results

    async def _grade_captured(self, event, participant, curriculum, scores,
                              override, notes, admin_notes) -> BulkGradeResult:
        try:
            return await self.grade_one(event, participant, curriculum, scores,
                                        override, notes, admin_notes)
        except Exception as e:
            # aggregation errors (e.g. an unknown override value) stay with this participant
            logger.exception('Grading %s failed', participant.member_name)
            return BulkGradeResult(participant=participant, ok=False, percent=0,
                                   status=_stored_status(participant),
                                   error=str(e) or type(e).__name__)

    async def _publish_document(self, event: TestingEvent, participant: Participant,
                                curriculum: RankTest, scores: ScoreSnapshot,
                                summary: GradeSummary) -> str | None:
        """Render, upload and register the result PDF.

        Returns the new URL once the participant points at it, else None.
        A failure to list it in the member documents is only logged.
        """
        try:
            pdf = render_result_pdf(
                participant, event, curriculum, scores, summary.percent,
                summary.final_status is ParticipantStatus.PASSED,
                school=self.school, graded_at=datetime.datetime.now())
            url = await self.backend.upload_document(pdf, result_filename(participant, event))
            if not url:
                logger.error('Upload of result document for %s failed', participant.member_name)
                return None

            if not await self.backend.set_result_document(event.id, participant.id, url):
                logger.error('Result document URL for %s was not saved', participant.member_name)
                return None
        except Exception:
            logger.exception('Result document for %s was not published', participant.member_name)
            return None

        # the participant now points at the new document
        participant.result_document_url = url
        try:
            added = await self.backend.append_member_document(
                participant.member_id, url, document_display_name(participant, event))
        except Exception:
            logger.exception('Adding the result document to %s\'s documents failed',
                             participant.member_name)
            return url
        if not added:
            logger.error('Result document for %s is missing from the member documents',
                         participant.member_name)
        return url


def failure_message(results: list[BulkGradeResult]) -> str | None:
    """User-facing summary of failed saves, or None when all succeeded."""
    failed = sum(1 for r in results if not r.ok)
    if not failed:
        return None
    return f'Failed to save grades for {failed} participant(s)'


def _stored_status(participant: Participant) -> ParticipantStatus:
    try:
        return ParticipantStatus(participant.status)
    except ValueError:
        return ParticipantStatus.INCOMPLETE

from __future__ import annotations

from time import perf_counter

import anyio
import structlog

from recorder_worker.config import WorkerSettings
from recorder_worker.emailer import MailjetEmailSender, MeetingNotes
from recorder_worker.logging_setup import bind_job, unbind_job
from recorder_worker.repository import SupabaseWorkerRepository
from recorder_worker.scheduler import ScheduledMeetingPromoter
from recorder_worker.summarizer import MeetingSummarizer
from recorder_worker.types import ClaimedMeeting, SummaryResult

logger = structlog.get_logger(__name__)


class WorkerProcessor:
    def __init__(
        self,
        *,
        settings: WorkerSettings,
        repository: SupabaseWorkerRepository,
        promoter: ScheduledMeetingPromoter,
        summarizer: MeetingSummarizer,
        emailer: MailjetEmailSender,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._promoter = promoter
        self._summarizer = summarizer
        self._emailer = emailer

    async def run_forever(self) -> None:
        logger.info("worker_started", poll_seconds=self._settings.worker_poll_seconds)
        while True:
            cycle_started = perf_counter()
            try:
                await self.process_once()
            except Exception as exc:
                logger.exception("worker_cycle_failed", error=str(exc))
            logger.info("worker_cycle_done", duration_ms=round((perf_counter() - cycle_started) * 1000, 2))
            await anyio.sleep(self._settings.worker_poll_seconds)

    async def process_once(self) -> None:
        promoted = await self._promoter.promote_due()
        if promoted:
            logger.info("scheduled_meetings_promoted", count=len(promoted))

        claim_started = perf_counter()
        claims = await self._repository.claim_processing_meetings(self._settings.worker_batch_size)
        logger.info(
            "claimed_processing_meetings",
            count=len(claims),
            duration_ms=round((perf_counter() - claim_started) * 1000, 2),
        )

        for claim in claims:
            await self._process_claim(claim)

    async def _process_claim(self, claim: ClaimedMeeting) -> None:
        bind_job(meeting_id=str(claim.id))

        started = perf_counter()
        try:
            load_started = perf_counter()
            fragments = await self._repository.get_transcriptions(claim.id)
            logger.info(
                "transcriptions_loaded",
                count=len(fragments),
                duration_ms=round((perf_counter() - load_started) * 1000, 2),
            )

            summary_started = perf_counter()
            summary = self._summarizer.generate_summary(fragments)
            logger.info(
                "summary_generated",
                key_point_count=len(summary.key_points),
                action_item_count=len(summary.action_items),
                duration_ms=round((perf_counter() - summary_started) * 1000, 2),
            )

            await self._repository.upsert_summary(meeting_id=claim.id, result=summary)
            await self._notify_attendees(claim, summary)
            await self._repository.mark_completed(meeting_id=claim.id, lock_token=claim.lock_token)

            logger.info(
                "meeting_completed",
                attempts=claim.attempts,
                duration_ms=round((perf_counter() - started) * 1000, 2),
            )
        except Exception as exc:
            error_message = str(exc)
            logger.exception(
                "meeting_processing_failed",
                error=error_message,
                attempts=claim.attempts,
                duration_ms=round((perf_counter() - started) * 1000, 2),
            )
            await self._repository.handle_failure(
                meeting_id=claim.id,
                lock_token=claim.lock_token,
                attempts=claim.attempts,
                error_message=error_message,
                max_attempts=self._settings.worker_max_attempts,
            )
        finally:
            unbind_job("meeting_id")

    async def _notify_attendees(self, claim: ClaimedMeeting, summary: SummaryResult) -> None:
        attendees = await self._repository.get_pending_attendees(claim.id)
        if not attendees:
            logger.info("no_attendees_to_notify")
            return

        notes = MeetingNotes(
            meeting_id=str(claim.id),
            title=claim.title,
            summary=summary,
            transcript_url=self._settings.transcript_url(str(claim.id)),
        )
        for attendee in attendees:
            email_started = perf_counter()
            send_result = await anyio.to_thread.run_sync(
                self._emailer.send_meeting_notes,
                attendee.email,
                attendee.name,
                notes,
            )
            # A retried job only mails attendees still flagged unsent.
            await self._repository.mark_attendee_notified(attendee.id)
            logger.info(
                "attendee_notified",
                attendee_id=str(attendee.id),
                message_id=send_result.message_id,
                recipient_state=send_result.recipient_state,
                duration_ms=round((perf_counter() - email_started) * 1000, 2),
            )

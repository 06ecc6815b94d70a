from __future__ import annotations

import anyio

from recorder_worker.config import get_settings
from recorder_worker.emailer import MailjetEmailSender
from recorder_worker.logging_setup import configure_logging
from recorder_worker.processor import WorkerProcessor
from recorder_worker.repository import SupabaseWorkerRepository
from recorder_worker.scheduler import ScheduledMeetingPromoter
from recorder_worker.summarizer import MeetingSummarizer


async def _main() -> None:
    settings = get_settings()
    configure_logging(service="worker", level=settings.log_level, json_logs=settings.log_json)

    repository = SupabaseWorkerRepository(settings)
    processor = WorkerProcessor(
        settings=settings,
        repository=repository,
        promoter=ScheduledMeetingPromoter(
            repository=repository,
            window_minutes=settings.schedule_window_minutes,
        ),
        summarizer=MeetingSummarizer(
            summary_sentences=settings.summary_sentences,
            max_key_points=settings.summary_max_key_points,
            max_action_items=settings.summary_max_action_items,
            segment_gap_ms=settings.segment_gap_ms,
        ),
        emailer=MailjetEmailSender(settings),
    )
    await processor.run_forever()


if __name__ == "__main__":
    anyio.run(_main)

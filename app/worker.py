"""Transcription worker: drains the durable job queue.

Runs inline after API requests (``TRANSCRIPTION_INLINE_WORKER``) or as a
standalone process::

    python -m app.worker
"""

import logging
import threading
from collections.abc import Callable

from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import session_scope
from app.services.transcription import get_transcription_service

logger = logging.getLogger("callcoach")

# Overridable session factory (tests point this at their own session)
_session_factory: Callable[[], Session] | None = None


def process_pending_jobs() -> int:
    """Run every queued job once. Returns the number of jobs this call processed."""
    service = get_transcription_service()
    processed = 0
    with session_scope(_session_factory) as db:
        for job_id in service.pending_job_ids(db):
            if service.run_job(db, job_id):
                processed += 1
    return processed


def recover_stale_jobs() -> int:
    """Re-queue jobs a previous process left running."""
    with session_scope(_session_factory) as db:
        count = get_transcription_service().requeue_stale_jobs(db)
    if count:
        logger.warning("Re-queued %d stale transcription job(s)", count)
    return count


def run_forever(poll_interval: float | None = None, stop_event: threading.Event | None = None) -> None:
    """Poll for queued jobs until ``stop_event`` is set."""
    interval = poll_interval if poll_interval is not None else get_settings().WORKER_POLL_INTERVAL_SECONDS
    stop_event = stop_event or threading.Event()
    recover_stale_jobs()
    logger.info("Transcription worker started (poll every %.1fs)", interval)
    while not stop_event.is_set():
        try:
            processed = process_pending_jobs()
        except Exception:
            logger.exception("Worker iteration failed")
            processed = 0
        if not processed:
            stop_event.wait(interval)
    logger.info("Transcription worker stopped")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for warning in get_settings().validate():
        logger.warning(warning)
    try:
        run_forever()
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

import time

from intake.config.settings import Settings
from intake.database.repositories.session_repository import SessionRepository
from intake.logging.logger import Log
from intake.processor.orchestrator import ProcessingOrchestrator


class Worker:
    """Poll loop: list ready sessions -> hand each to the orchestrator -> sleep."""

    def __init__(
        self,
        session_repo: SessionRepository,
        orchestrator: ProcessingOrchestrator,
        settings: Settings,
    ) -> None:
        self._session_repo = session_repo
        self._orchestrator = orchestrator
        self._settings = settings

    def run(self, max_sessions: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_sessions is set, stop after handling that many sessions (for testing).
        """
        Log.info("Worker started, polling for ready sessions")
        handled = 0
        try:
            while max_sessions is None or handled < max_sessions:
                session_ids = self._poll_ready()
                if not session_ids:
                    Log.debug("No ready sessions, sleeping")
                    time.sleep(self._settings.worker_poll_interval_seconds)
                    continue
                for session_id in session_ids:
                    self._orchestrator.handle(session_id)
                    handled += 1
                    if max_sessions is not None and handled >= max_sessions:
                        break
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _poll_ready(self) -> list[str]:
        """List ready session ids. Gracefully handle DB errors."""
        try:
            return self._session_repo.find_ready_ids(self._settings.worker_batch_size)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return []

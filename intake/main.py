from intake.config.settings import Settings
from intake.database.connection import close_pool, init_pool
from intake.database.repositories.session_repository import SessionRepository
from intake.logging.logger import Log
from intake.processor.orchestrator import build_orchestrator
from intake.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        session_repo = SessionRepository()
        orchestrator = build_orchestrator(settings, session_repo=session_repo)
        worker = Worker(session_repo, orchestrator, settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()

from collections.abc import Sequence

from intake.database.models import SessionRecord
from intake.exceptions import DuplicateError
from intake.logging.logger import Log
from intake.processor.messages import format_failure
from intake.processor.pipeline import PipelineContext, PipelineStep


class Processor:
    """Runs the processing steps for one claimed session, in order.

    Every step is fatal: the first exception runs the failed step (which
    records the error) and is then re-raised to the caller.
    """

    def __init__(
        self,
        steps: Sequence[PipelineStep],
        failed_step: PipelineStep | None = None,
    ) -> None:
        self._steps = list(steps)
        self._failed_step = failed_step

    def process(self, session: SessionRecord) -> PipelineContext:
        Log.info(f"Processing session {session.session_id}", pages=len(session.pages))
        context = PipelineContext(session=session)
        for step in self._steps:
            try:
                context = step.run(context)
            except Exception as exc:
                context.error_message = format_failure(context, exc)
                if isinstance(exc, DuplicateError):
                    context.duplicate_of = exc.existing_ref
                Log.error(
                    f"Step {type(step).__name__} failed for session "
                    f"{session.session_id}: {exc}"
                )
                if self._failed_step is not None:
                    self._failed_step.run(context)
                raise
        return context

"""Fire-and-forget regeneration after a template change."""

import threading

from loguru import logger

from workout_engine.scheduling.generator import InstanceGenerator


class BackgroundRegenerator:
    """Callable trigger that re-expands a plan's horizon off the request path.

    Failures are logged and never reach the caller.
    """

    def __init__(self, generator: InstanceGenerator, run_in_thread: bool = True):
        self._generator = generator
        self._run_in_thread = run_in_thread

    def __call__(self, plan_id: str) -> None:
        if not self._run_in_thread:
            self._run(plan_id)
            return

        thread = threading.Thread(
            target=self._run,
            args=(plan_id,),
            daemon=True,
            name=f"regenerate-{plan_id}",
        )
        thread.start()
        logger.debug("Background regeneration started", plan_id=plan_id)

    def _run(self, plan_id: str) -> None:
        try:
            result = self._generator.regenerate_horizon(plan_id)
        except Exception as e:
            logger.bind(plan_id=plan_id, error=str(e)).warning("Background regeneration failed")
            return
        logger.info("Background regeneration complete", plan_id=plan_id, created=result.created_count)

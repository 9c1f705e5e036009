import structlog
from shared.observability import ecomm_saga_compensation_total

logger = structlog.get_logger(__name__)

class SagaStep:
    def __init__(self, name, action, compensation=None):
        self.name = name
        self.action = action
        self.compensation = compensation

    def __repr__(self):
        return f"<SagaStep {self.name}>"

class SagaOrchestrator:
    """
    Runs async steps in order over a shared ctx dict.

    When a step raises, the compensations of the steps that already
    completed run newest first and the failing step's exception propagates.
    Compensations that themselves fail are logged and listed under
    ctx["compensation_failures"]; the remaining ones still run.
    """

    def __init__(self, name: str = "saga"):
        self.name = name
        self.steps: list[SagaStep] = []

    def add_step(self, name: str, action, compensation=None):
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def execute(self, ctx: dict):
        completed = []
        for step in self.steps:
            try:
                await step.action(ctx)
            except Exception as e:
                logger.warning("saga_step_failed", saga=self.name, step=step.name, error=str(e))
                ctx["failed_step"] = step.name
                await self._rollback(completed, ctx)
                raise
            completed.append(step)
        return True

    async def _rollback(self, completed: list[SagaStep], ctx: dict):
        logger.info("saga_rollback_started", saga=self.name, completed=[s.name for s in completed])
        failures = ctx.setdefault("compensation_failures", [])
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await step.compensation(ctx)
            except Exception as ce:
                failures.append(step.name)
                logger.critical(
                    "saga_compensation_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(ce),
                    detail="Manual intervention may be required",
                )
                continue
            ecomm_saga_compensation_total.labels(step_name=step.name).inc()
            logger.info("saga_compensation_succeeded", saga=self.name, step=step.name)

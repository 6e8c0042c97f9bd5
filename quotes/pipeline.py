"""
Ordered workflow steps with a declared failure policy.

A ``Pipeline`` runs its steps strictly in declaration order. A fatal step
that raises aborts the run and the exception reaches the caller. A non-fatal
step that raises is logged, recorded on the context and skipped; the next
step still runs.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class StepFailure:
    step: str
    error: Exception


@dataclass
class WorkflowContext:
    payload: dict[str, Any] = field(default_factory=dict)
    quote: Any = None
    previous_status: str | None = None
    document: bytes | None = None
    customer: Any = None
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[StepFailure] = field(default_factory=list)

    @property
    def failed_steps(self) -> list[str]:
        return [failure.step for failure in self.failures]


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[WorkflowContext], Any]
    fatal: bool = False
    condition: Callable[[WorkflowContext], bool] | None = None

    def should_run(self, context: WorkflowContext) -> bool:
        return self.condition is None or bool(self.condition(context))


class Pipeline:
    def __init__(self, name: str, steps: list[Step]):
        self.name = name
        self.steps = list(steps)

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def run(self, context: WorkflowContext) -> WorkflowContext:
        for step in self.steps:
            if not step.should_run(context):
                context.skipped.append(step.name)
                logger.info("pipeline_step_skipped", extra=self._log_extra(step, context))
                continue

            try:
                step.action(context)
            except Exception as exc:
                if step.fatal:
                    raise
                context.failures.append(StepFailure(step=step.name, error=exc))
                logger.warning(
                    "pipeline_step_failed error=%s",
                    exc,
                    exc_info=True,
                    extra=self._log_extra(step, context),
                )
                continue

            context.completed.append(step.name)

        return context

    def _log_extra(self, step: Step, context: WorkflowContext) -> dict[str, Any]:
        quote = context.quote
        return {
            "pipeline": self.name,
            "step": step.name,
            "quote_id": str(quote.id) if quote is not None and quote.pk else None,
            "reference": getattr(quote, "reference", None) or None,
        }

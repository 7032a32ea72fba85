import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

from errors import PipelineContractError

log = logging.getLogger(__name__)


@dataclass
class PipelineEvent:
    """Progress notification. ``kind`` is 'step' or 'item'."""
    kind: str
    index: int
    total: int
    description: str
    completed: int = 0
    count: int = 0


Listener = Callable[[PipelineEvent], None]
StepAction = Callable[[Any], Awaitable[None]]
ItemAction = Callable[[Any, Any], Awaitable[None]]


@dataclass
class ParallelMap:
    """Fans one action out over the items computed from the state."""
    items: Callable[[Any], Iterable[Any]]
    action: ItemAction
    limit: Optional[int] = None


@dataclass
class Step:
    description: str
    action: Optional[StepAction] = None
    parallel: Optional[ParallelMap] = None
    requires: Sequence[str] = ()
    produces: Sequence[str] = ()

    def __post_init__(self) -> None:
        if (self.action is None) == (self.parallel is None):
            raise ValueError(f"Step '{self.description}' needs exactly one of action or parallel")


@dataclass
class PipelineResult:
    state: Any
    completed: int = 0
    failed_step: Optional[Step] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass
class Pipeline:
    """
    Runs steps strictly in order over one shared state object.

    The first failing step halts the pipeline and is reported in the
    returned PipelineResult. Nothing already written is rolled back.
    """
    steps: List[Step] = field(default_factory=list)
    listener: Optional[Listener] = None

    def add(self, step: Step) -> 'Pipeline':
        self.steps.append(step)
        return self

    def _emit(self, event: PipelineEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception:
            log.exception("Progress listener failed")

    async def execute(self, state: Any) -> PipelineResult:
        result = PipelineResult(state=state)
        total = len(self.steps)
        for index, step in enumerate(self.steps):
            self._emit(PipelineEvent('step', index, total, step.description))
            try:
                self._check_fields(step, state, step.requires, 'requires')
                if step.parallel is not None:
                    await self._run_parallel(index, total, step, state)
                else:
                    await step.action(state)
                self._check_fields(step, state, step.produces, 'produces')
            except Exception as error:
                log.error(f"Step {index + 1}/{total} '{step.description}' failed: {error}")
                result.failed_step = step
                result.error = error
                return result
            result.completed += 1
        return result

    @staticmethod
    def _check_fields(step: Step, state: Any, names: Sequence[str], kind: str) -> None:
        missing = [name for name in names if getattr(state, name, None) is None]
        if missing:
            raise PipelineContractError(
                f"Step '{step.description}' {kind} {', '.join(missing)} but it is not set"
            )

    async def _run_parallel(self, index: int, total: int, step: Step, state: Any) -> None:
        parallel = step.parallel
        items = list(parallel.items(state))
        count = len(items)
        if not items:
            return

        semaphore = asyncio.Semaphore(parallel.limit) if parallel.limit else None
        failures: List[BaseException] = []
        completed = 0

        async def run_item(item: Any) -> None:
            nonlocal completed
            if semaphore is not None:
                await semaphore.acquire()
            try:
                # Items not yet dispatched are dropped once a sibling failed
                if failures:
                    return
                try:
                    await parallel.action(item, state)
                except Exception as error:
                    failures.append(error)
                    return
                completed += 1
                self._emit(PipelineEvent('item', index, total, step.description, completed, count))
            finally:
                if semaphore is not None:
                    semaphore.release()

        await asyncio.gather(*(run_item(item) for item in items))
        if failures:
            raise failures[0]

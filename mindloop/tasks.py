"""TaskQueue: durable FIFO of autonomous work.

``execute_one`` promotes at most one pending task per call (the oldest;
priority is recorded but does not reorder the queue) and drives it to a
terminal status. Handlers ask the model for free text through the gateway and
record what they learn.
Handler failures abandon the task with the error in ``result``; the queue
itself never raises.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional, Tuple

from mindloop.gateway import Gateway
from mindloop.invoker import InvocationRequest
from mindloop.protocols import StorageError
from mindloop.result import ErrorKind, Result
from mindloop.types import (
    CognitiveLogEntry,
    Decision,
    DecisionKind,
    Reflection,
    SelfQuestion,
    Task,
    TaskKind,
    TaskOutcome,
    TaskStatus,
)
from mindloop.utils import offload, truncate

logger = logging.getLogger(__name__)

# Decision kind -> (task kind, priority, motivation)
DECISION_TASKS: Dict[DecisionKind, Tuple[TaskKind, int, str]] = {
    DecisionKind.EXPLORE_CONCEPT: (TaskKind.EXPLORE_CONCEPT, 7, "curiosity"),
    DecisionKind.REFLECT: (TaskKind.REFLECT, 6, "self-improvement"),
    DecisionKind.INTEGRATE_KNOWLEDGE: (TaskKind.INTEGRATE_KNOWLEDGE, 5, "understanding"),
    DecisionKind.ASK_QUESTION: (TaskKind.ASK_QUESTION, 8, "curiosity"),
}

TASK_SYSTEM_PROMPT = (
    "You are the inner voice of a curious conversational agent working on its "
    "own between conversations. Answer concisely and concretely."
)

Handler = Callable[[Task], Awaitable[Result[str]]]


class TaskQueue:
    def __init__(self, storage, gateway: Gateway, store_timeout: Optional[float] = None):
        self._storage = storage
        self._gateway = gateway
        self._store_timeout = store_timeout
        self._handlers: Dict[str, Handler] = {
            TaskKind.EXPLORE_CONCEPT.value: self._explore_concept,
            TaskKind.REFLECT.value: self._reflect,
            TaskKind.INTEGRATE_KNOWLEDGE.value: self._integrate_knowledge,
            TaskKind.ASK_QUESTION.value: self._ask_question,
        }

    async def _store(self, fn, *args):
        return await offload(fn, *args, timeout=self._store_timeout)

    # ---- Enqueue ----

    async def enqueue(self, task: Task) -> Optional[Task]:
        """Persist a pending task. Returns None if the store rejected it."""
        task.status = TaskStatus.PENDING
        try:
            await self._store(self._storage.save_task, task)
        except StorageError as e:
            logger.warning(f"Could not enqueue {task.kind} task: {e}")
            return None
        logger.debug(f"Enqueued {task.kind} task {task.id[:8]} (priority {task.priority})")
        return task

    async def enqueue_for_decision(self, decision: Decision) -> Optional[Task]:
        """Queue the task a decision implies; kinds without one queue nothing."""
        mapping = DECISION_TASKS.get(decision.kind)
        if mapping is None:
            return None
        kind, priority, motivation = mapping
        return await self.enqueue(
            Task(
                kind=kind.value,
                description=decision.action,
                priority=priority,
                motivation=motivation,
            )
        )

    # ---- Execute ----

    async def execute_one(self) -> Optional[TaskOutcome]:
        """Run the next pending task, if any. Never raises."""
        try:
            task = await self._store(self._storage.get_next_pending_task)
            if task is None:
                return None
            claimed = await self._store(
                self._storage.transition_task,
                task.id,
                TaskStatus.PENDING,
                TaskStatus.IN_PROGRESS,
            )
        except StorageError as e:
            logger.warning(f"Could not claim a task: {e}")
            return None
        if not claimed:
            return None

        handler = self._handlers.get(task.kind)
        if handler is None:
            result: Result[str] = Result.fail(
                ErrorKind.INVARIANT, f"unknown task kind: {task.kind}"
            )
        else:
            try:
                result = await handler(task)
            except Exception as e:
                logger.warning(f"Task {task.id[:8]} ({task.kind}) handler failed: {e}")
                result = Result.fail(ErrorKind.TRANSIENT, str(e))

        if result.is_ok:
            status, text = TaskStatus.COMPLETED, result.value
        else:
            status, text = TaskStatus.ABANDONED, result.describe()

        try:
            await self._store(
                self._storage.transition_task,
                task.id,
                TaskStatus.IN_PROGRESS,
                status,
                text,
            )
        except StorageError as e:
            logger.warning(f"Could not record outcome of task {task.id[:8]}: {e}")

        return TaskOutcome(task_id=task.id, kind=task.kind, status=status, result=text)

    # ---- Handlers ----

    async def _ask(self, prompt: str) -> Result[str]:
        result = await self._gateway.call(
            InvocationRequest(prompt=prompt, system=TASK_SYSTEM_PROMPT, temperature=0.9),
            call_class="creative",
        )
        if result.is_ok and not (result.value or "").strip():
            return Result.fail(ErrorKind.PARSE, "empty response")
        return result

    async def _explore_concept(self, task: Task) -> Result[str]:
        result = await self._ask(
            f"Explore this idea in a short paragraph: {task.description}. "
            "What is it, and what does it connect to?"
        )
        if result.is_ok:
            name = truncate(task.description.strip(), 100)
            await self._store(self._storage.reinforce_concept, name, truncate(result.value, 500))
        return result

    async def _reflect(self, task: Task) -> Result[str]:
        result = await self._ask(
            f"Reflect on this: {task.description}. What have you learned, "
            "and did it change any belief?"
        )
        if result.is_ok:
            await self._store(
                self._storage.save_reflection,
                Reflection(reflection_type="autonomous", content=result.value.strip()),
            )
        return result

    async def _integrate_knowledge(self, task: Task) -> Result[str]:
        result = await self._ask(
            f"Integrate what you know around: {task.description}. "
            "Summarize the connections in a few sentences."
        )
        if result.is_ok:
            await self._store(
                self._storage.save_log_entry,
                CognitiveLogEntry(
                    event_type="integration",
                    description=truncate(result.value.strip(), 1000),
                ),
            )
        return result

    async def _ask_question(self, task: Task) -> Result[str]:
        result = await self._ask(
            f"Given this line of thought: {task.description}. "
            "Write the single most important question you want answered. "
            "Reply with the question only."
        )
        if result.is_ok:
            await self._store(
                self._storage.save_question,
                SelfQuestion(
                    question=truncate(result.value.strip(), 500),
                    category="autonomous",
                    priority=task.priority,
                ),
            )
        return result

"""Batch job tree: parent/child completion tracking.

A job becomes a batch node by staging children with ``add`` while it runs.
Once the job body succeeds, the node is persisted and the children are
dispatched. Each child reports its outcome to its parent's state map, and
the node resolves once every child reached a terminal status:

    class ImportWorker(Worker):
        async def perform(self, file_ids: list[str]) -> None:
            for file_id in file_ids:
                self.batch.add(ImportFileWorker, file_id)

        async def on_batch_complete(self) -> None:
            ...

Store layout:
- batch_job/job/<job_id>    serialized owning job, to run callbacks later
- batch_job/state/<job_id>  child job id -> status
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pushtask.batch.progress import TERMINAL_STATUSES, BatchProgress, BatchStatus
from pushtask.errors import DeadWorkerError, InvalidWorkerError
from pushtask.middleware.chain import Next
from pushtask.store.keys import StoreKeys

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker
    from pushtask.runtime import JobRuntime
    from pushtask.store.base import KeyValueStore

logger = logging.getLogger(__name__)

PARENT_ID_META = StoreKeys.batch_meta("parent_id")

_CHILD_CALLBACKS = {
    BatchStatus.COMPLETED: "on_child_complete",
    BatchStatus.ERRORED: "on_child_error",
    BatchStatus.DEAD: "on_child_dead",
}

_UNSET: Any = object()


class BatchJob:
    """Batch node facade over a worker."""

    def __init__(self, worker: Worker) -> None:
        self.worker = worker
        self.jobs: list[Worker] = []
        self.dispatched = False
        self._parent_batch: BatchJob | None = _UNSET

    @classmethod
    def for_worker(cls, worker: Worker) -> BatchJob:
        """Attach a batch node to a worker."""
        worker.batch = cls(worker)
        return worker.batch

    @classmethod
    async def find(cls, runtime: JobRuntime, job_id: str | None) -> BatchJob | None:
        """Load a persisted batch node."""
        if not job_id:
            return None

        payload = await runtime.store.fetch(StoreKeys.batch_job(job_id))
        if payload is None:
            return None

        try:
            worker = runtime.worker_from_payload(payload)
        except InvalidWorkerError as e:
            logger.warning(f"Unable to load batch {job_id}: {e}")
            return None
        return cls.for_worker(worker)

    @property
    def store(self) -> KeyValueStore:
        return self.worker.runtime.store

    @property
    def batch_id(self) -> str:
        return self.worker.job.id

    @property
    def batch_gid(self) -> str:
        return StoreKeys.batch_job(self.batch_id)

    @property
    def batch_state_gid(self) -> str:
        return StoreKeys.batch_state(self.batch_id)

    @property
    def parent_id(self) -> str | None:
        return self.worker.job.get_meta(PARENT_ID_META)

    @property
    def reenqueued(self) -> bool:
        return self.worker.job.reenqueued

    def __eq__(self, other: object) -> bool:
        return isinstance(other, BatchJob) and other.batch_id == self.batch_id

    def __hash__(self) -> int:
        return hash(self.batch_id)

    async def parent_batch(self) -> BatchJob | None:
        if self._parent_batch is _UNSET:
            self._parent_batch = await type(self).find(self.worker.runtime, self.parent_id)
        return self._parent_batch

    # -- Children ------------------------------------------------------------

    def add(self, worker_cls: type[Worker], *args: Any) -> Worker:
        """Stage a child job on this job's queue."""
        return self.add_to_queue(self.worker.job.queue, worker_cls, *args)

    def add_to_queue(self, queue: str, worker_cls: type[Worker], *args: Any) -> Worker:
        """Stage a child job on a specific queue."""
        child = worker_cls.build(
            self.worker.runtime,
            *args,
            meta={PARENT_ID_META: self.batch_id},
            queue=queue,
        )
        self.jobs.append(child)
        return child

    async def save(self) -> None:
        """Persist the owning job and the initial state of staged children."""
        await self.store.write(self.batch_gid, self.worker.job.to_dict())
        await self.store.write(
            self.batch_state_gid,
            {child.job.id: BatchStatus.SCHEDULED.value for child in self.jobs},
        )

    async def setup(self) -> None:
        """Persist the node and dispatch staged children, if any."""
        if not self.jobs:
            return

        await self.save()
        self.dispatched = True
        for child in self.jobs:
            await child.schedule()

    # -- State ---------------------------------------------------------------

    async def batch_state(self) -> dict[str, str]:
        return await self.store.fetch(self.batch_state_gid) or {}

    async def update_state(self, child_id: str, status: BatchStatus) -> dict[str, str] | None:
        """Record a child status.

        Children never leave a terminal status, so a redelivered child
        cannot move its parent backwards or resolve it twice.

        Returns:
            The updated state, or None if nothing changed
        """
        async with self.store.lock(self.batch_state_gid):
            state = await self.store.fetch(self.batch_state_gid)
            if not state or child_id not in state:
                return None

            current = state[child_id]
            if current == status.value or current in TERMINAL_STATUSES:
                return None

            state[child_id] = status.value
            await self.store.write(self.batch_state_gid, state)
            return state

    async def is_complete(self) -> bool:
        """Whether every child reached a terminal status."""
        async with self.store.lock(self.batch_state_gid):
            state = await self.store.fetch(self.batch_state_gid)
            if not state:
                return True
            return all(value in TERMINAL_STATUSES for value in state.values())

    # -- Callbacks -----------------------------------------------------------

    async def run_worker_callback(self, name: str, *args: Any) -> Any:
        return await self.worker.run_callback(name, *args)

    async def on_complete(self, status: BatchStatus = BatchStatus.COMPLETED) -> None:
        """Resolve this node and report to the parent.

        A root node removes the persisted state of its whole tree.
        """
        try:
            if status is BatchStatus.COMPLETED:
                await self.run_worker_callback("on_batch_complete")

            parent = await self.parent_batch()
            if parent is not None:
                await parent.on_child_complete(self, status)
        finally:
            if await self.parent_batch() is None:
                await self.cleanup()

    async def on_child_complete(
        self,
        child: BatchJob,
        status: BatchStatus = BatchStatus.COMPLETED,
    ) -> None:
        """Record a child outcome and resolve this node when possible.

        A dead child resolves the node right away as dead.
        """
        state = await self.update_state(child.batch_id, status)
        if state is None:
            return

        callback = _CHILD_CALLBACKS.get(status)
        if callback:
            await self.run_worker_callback(callback, child.worker)

        terminal = all(value in TERMINAL_STATUSES for value in state.values())
        if status is BatchStatus.DEAD or terminal:
            dead = BatchStatus.DEAD.value in state.values()
            await self.on_complete(BatchStatus.DEAD if dead else BatchStatus.COMPLETED)

    async def on_batch_node_complete(
        self,
        child: BatchJob,
        status: BatchStatus = BatchStatus.COMPLETED,
    ) -> None:
        """Notify this node and its ancestors that a descendant resolved.

        Fires for dead descendants as well as completed ones. Errored
        descendants do not resolve and are not reported.
        """
        if status.value not in TERMINAL_STATUSES:
            return

        node: BatchJob | None = self
        while node is not None:
            await node.run_worker_callback("on_batch_node_complete", child.worker)
            node = await node.parent_batch()

    # -- Tree walks ----------------------------------------------------------

    async def cleanup(self) -> None:
        """Delete the persisted state of this node and all its descendants."""
        stack = [self.batch_id]
        while stack:
            node_id = stack.pop()
            state = await self.store.fetch(StoreKeys.batch_state(node_id)) or {}
            stack.extend(state)
            await self.store.delete(StoreKeys.batch_job(node_id), StoreKeys.batch_state(node_id))

    async def progress(self, depth: int | None = None) -> BatchProgress:
        """Child status counts of the subtree.

        Args:
            depth: Levels below the direct children to include
                (0 = direct children only, None = whole subtree)
        """
        progress = BatchProgress()
        stack = [(self.batch_id, 0)]
        while stack:
            node_id, level = stack.pop()
            state = await self.store.fetch(StoreKeys.batch_state(node_id)) or {}
            progress += BatchProgress(state)
            if depth is None or level < depth:
                stack.extend((child_id, level + 1) for child_id in state)
        return progress

    # -- Execution -----------------------------------------------------------

    async def complete(self, status: BatchStatus = BatchStatus.COMPLETED) -> None:
        """Report the outcome of this job's own run.

        Skipped when the job was re-enqueued or dispatched children, since
        the children's completion drives the node from then on.
        """
        if self.reenqueued or self.dispatched:
            return

        if await self.is_complete():
            await self.on_complete(status)

        parent = await self.parent_batch()
        if parent is not None:
            await parent.on_batch_node_complete(self, status)

    async def execute(self, call_next: Next) -> Any:
        """Run the job and report its outcome to the tree."""
        parent = await self.parent_batch()
        if parent is not None:
            await parent.update_state(self.batch_id, BatchStatus.PROCESSING)

        try:
            result = await call_next()
            await self.setup()
        except DeadWorkerError:
            await self.complete(BatchStatus.DEAD)
            raise
        except Exception:
            await self.complete(BatchStatus.ERRORED)
            raise

        await self.complete(BatchStatus.COMPLETED)
        return result

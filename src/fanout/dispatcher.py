"""Worker pool that runs a workload across all hosts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from .config import ExecutionConfig
from .connector import Connector
from .errors import ConfigurationError, ExecutionError, HostError
from .hosts import Host
from .workload import Workload

logger = logging.getLogger(__name__)

ONE_WORKER_PER_HOST = -1


class HostStatus(Enum):
    """Status of a host's processing."""

    PENDING = "pending"
    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ClientResponse:
    """Outcome of running the workload on one host."""

    host: Host
    output: str = ""
    error: Exception | None = None
    exit_status: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# Type aliases for progress callbacks, keyed by the host's position in the list
StatusCallback = Callable[[int, Host, HostStatus], None]
ResponseCallback = Callable[[int, ClientResponse], None]

# Pushed once all workers have returned
_WORKERS_DONE = None


def effective_workers(procs: int, host_count: int) -> int:
    """Number of workers to spawn for ``host_count`` hosts."""
    if procs == ONE_WORKER_PER_HOST:
        return host_count
    if procs < 1:
        raise ConfigurationError(f"procs must be positive or -1, got {procs}")
    return min(procs, host_count)


class Dispatcher:
    """Distributes hosts over a bounded pool of workers.

    Each worker repeatedly takes a host from the job queue, connects,
    executes the workload and pushes exactly one response, whatever
    happened. A failing host never affects the others.
    """

    def __init__(
        self,
        config: ExecutionConfig,
        workload: Workload,
        connector: Connector | None = None,
        on_status: StatusCallback | None = None,
        on_response: ResponseCallback | None = None,
    ):
        self.config = config
        self.workload = workload
        self.connector = connector or Connector(config)
        self.on_status = on_status
        self.on_response = on_response

    def _emit_status(self, index: int, host: Host, status: HostStatus) -> None:
        if self.on_status:
            self.on_status(index, host, status)

    async def run(self, hosts: Sequence[Host]) -> list[ClientResponse]:
        """Run the workload on every host, returning responses in completion order."""
        total = len(hosts)
        if total == 0:
            return []
        workers = effective_workers(self.config.procs, total)
        logger.debug("Running %d host(s) with %d worker(s)", total, workers)

        jobs: asyncio.Queue[tuple[int, Host]] = asyncio.Queue(maxsize=total)
        responses: asyncio.Queue[ClientResponse | None] = asyncio.Queue(maxsize=total)

        self._produce(jobs, hosts)
        collector = asyncio.create_task(self._collect(responses, total))
        tasks = [
            asyncio.create_task(self._worker(worker_id, jobs, responses))
            for worker_id in range(workers)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            collector.cancel()
            raise

        await responses.put(_WORKERS_DONE)
        return await collector

    def _produce(self, jobs: asyncio.Queue, hosts: Sequence[Host]) -> None:
        # The queue holds every host, so it is complete before any worker starts
        for index, host in enumerate(hosts):
            self._emit_status(index, host, HostStatus.PENDING)
            jobs.put_nowait((index, host))

    async def _collect(self, responses: asyncio.Queue, total: int) -> list[ClientResponse]:
        results: list[ClientResponse] = []
        while len(results) < total:
            response = await responses.get()
            if response is _WORKERS_DONE:
                logger.error("Workers finished with %d of %d responses", len(results), total)
                break
            results.append(response)
        return results

    async def _worker(self, worker_id: int, jobs: asyncio.Queue, responses: asyncio.Queue) -> None:
        while True:
            try:
                index, host = jobs.get_nowait()
            except asyncio.QueueEmpty:
                logger.debug("Worker %d: no more hosts", worker_id)
                return

            try:
                response = await self._process(index, host)
            except Exception as e:
                logger.exception("Worker %d: unexpected failure on %s", worker_id, host.label)
                response = ClientResponse(host, error=e)

            await responses.put(response)

    async def _process(self, index: int, host: Host) -> ClientResponse:
        """Connect to one host and run the workload on it."""
        self._emit_status(index, host, HostStatus.CONNECTING)
        try:
            async with await self.connector.connect(host) as session:
                self._emit_status(index, host, HostStatus.RUNNING)
                result = await self.workload.execute(session)
        except ExecutionError as e:
            response = ClientResponse(host, e.output, e, e.exit_status)
        except HostError as e:
            response = ClientResponse(host, error=e)
        else:
            response = ClientResponse(host, result.output, exit_status=result.exit_status)

        if response.ok:
            logger.debug("%s: done", host.label)
        else:
            logger.debug("%s: %s", host.label, response.error)
        self._emit_status(index, host, HostStatus.SUCCESS if response.ok else HostStatus.FAILED)
        if self.on_response:
            self.on_response(index, response)
        return response

"""Host bridge for external tool server processes.

The external-process transport never spawns anything itself. It talks to a
``ProcessHost`` through four operations: start a command, write a line to it,
stop it, and listen to per-process event streams. ``AsyncioProcessHost`` is the
implementation used by the server; tests substitute a fake.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

EventCallback = Callable[[str], None]
Unlisten = Callable[[], None]

READ_CHUNK_BYTES = 64 * 1024
# Larger lines are dropped, the stream keeps being read
MAX_LINE_BYTES = 64 * 1024 * 1024


async def read_lines(
    stream: asyncio.StreamReader, on_overflow: Callable[[], None]
) -> AsyncIterator[bytes]:
    """Yield the newline separated lines of ``stream`` regardless of their length.

    Unlike iterating the ``StreamReader`` itself, a line over the reader's
    buffer limit does not end the iteration. Lines over ``MAX_LINE_BYTES`` are
    skipped and reported through ``on_overflow``.
    """
    buffer = bytearray()
    discarding = False
    while True:
        chunk = await stream.read(READ_CHUNK_BYTES)
        if not chunk:
            break

        scan_from = len(buffer)
        buffer.extend(chunk)
        index = buffer.find(b"\n", scan_from)
        while index >= 0:
            line = bytes(buffer[:index])
            del buffer[: index + 1]
            if discarding:
                discarding = False
            else:
                yield line
            index = buffer.find(b"\n")

        if len(buffer) > MAX_LINE_BYTES:
            if not discarding:
                on_overflow()
            discarding = True
            buffer.clear()

    if buffer and not discarding:
        yield bytes(buffer)


class ProcessEvent(str, Enum):
    """Event classes emitted for a running process, each with a string payload."""

    MESSAGE = "message"
    ERROR = "error"
    DIAGNOSTIC = "diagnostic"
    CLOSED = "closed"


class ProcessHost(Protocol):
    """Minimal host contract needed by the external-process transport."""

    async def start(self, command: str, args: list[str]) -> str:
        """Start ``command`` with ``args`` and return an opaque process handle."""
        ...

    async def send(self, handle: str, message: str) -> None:
        """Write one serialized message to the process."""
        ...

    async def stop(self, handle: str) -> None:
        """Terminate the process."""
        ...

    def listen(
        self, handle: str, event: ProcessEvent, callback: EventCallback
    ) -> Unlisten:
        """Subscribe to one event class of a process; returns the unsubscribe function."""
        ...


@dataclass
class _ManagedProcess:
    process: asyncio.subprocess.Process
    tasks: list[asyncio.Task] = field(default_factory=list)
    listeners: dict[ProcessEvent, list[EventCallback]] = field(
        default_factory=lambda: defaultdict(list)
    )
    # Events emitted before anyone listened to that class
    backlog: dict[ProcessEvent, list[str]] = field(
        default_factory=lambda: defaultdict(list)
    )


class AsyncioProcessHost:
    """ProcessHost backed by asyncio subprocesses.

    Each stdout line is one protocol message, stderr lines are diagnostics,
    read failures are errors and process exit emits ``closed``.
    """

    def __init__(self, stop_timeout_s: float = 5.0) -> None:
        self.stop_timeout_s = stop_timeout_s
        self._processes: dict[str, _ManagedProcess] = {}

    async def start(self, command: str, args: list[str]) -> str:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        handle = uuid.uuid4().hex
        managed = _ManagedProcess(process=process)
        self._processes[handle] = managed
        managed.tasks = [
            asyncio.create_task(self._read_stdout(handle, process)),
            asyncio.create_task(self._read_stderr(handle, process)),
            asyncio.create_task(self._monitor(handle, process)),
        ]
        logger.info(f"Started process {handle}: {command} {' '.join(args)}")
        return handle

    async def send(self, handle: str, message: str) -> None:
        managed = self._processes.get(handle)
        if managed is None or managed.process.stdin is None:
            raise ValueError(f"Process {handle} not found")

        managed.process.stdin.write(message.encode("utf-8") + b"\n")
        await managed.process.stdin.drain()

    async def stop(self, handle: str) -> None:
        managed = self._processes.pop(handle, None)
        if managed is None:
            logger.debug(f"Stop requested for unknown process {handle}")
            return

        process = managed.process
        if process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(f"Process {handle} did not exit in time, killing it")
                process.kill()
                await process.wait()

        for task in managed.tasks:
            task.cancel()
        logger.info(f"Stopped process {handle}")

    def listen(
        self, handle: str, event: ProcessEvent, callback: EventCallback
    ) -> Unlisten:
        managed = self._processes.get(handle)
        if managed is None:
            raise ValueError(f"Process {handle} not found")

        managed.listeners[event].append(callback)
        for payload in managed.backlog.pop(event, []):
            callback(payload)

        def unlisten() -> None:
            try:
                managed.listeners[event].remove(callback)
            except ValueError:
                pass

        return unlisten

    def _emit(self, handle: str, event: ProcessEvent, payload: str) -> None:
        managed = self._processes.get(handle)
        if managed is None:
            return

        callbacks = list(managed.listeners.get(event, []))
        if not callbacks:
            managed.backlog[event].append(payload)
            return

        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                logger.error(
                    f"Listener for {event.value} on process {handle} failed: {e}",
                    exc_info=True,
                )

    async def _read_stdout(
        self, handle: str, process: asyncio.subprocess.Process
    ) -> None:
        if process.stdout is None:
            return

        def on_overflow() -> None:
            logger.error(
                f"Dropping stdout line over {MAX_LINE_BYTES} bytes from process {handle}"
            )
            self._emit(
                handle,
                ProcessEvent.ERROR,
                f"Dropped message larger than {MAX_LINE_BYTES} bytes",
            )

        try:
            async for raw_line in read_lines(process.stdout, on_overflow):
                line = raw_line.decode("utf-8", errors="replace").strip()
                if line:
                    logger.debug(f"Got stdout line from process {handle}: {line[:200]}")
                    self._emit(handle, ProcessEvent.MESSAGE, line)
        except Exception as e:
            logger.error(f"Error reading stdout for process {handle}: {e}")
            self._emit(handle, ProcessEvent.ERROR, f"Error reading stdout: {e}")

    async def _read_stderr(
        self, handle: str, process: asyncio.subprocess.Process
    ) -> None:
        if process.stderr is None:
            return

        def on_overflow() -> None:
            logger.warning(
                f"Dropping stderr line over {MAX_LINE_BYTES} bytes from process {handle}"
            )

        try:
            async for raw_line in read_lines(process.stderr, on_overflow):
                line = raw_line.decode("utf-8", errors="replace").strip()
                if line:
                    self._emit(handle, ProcessEvent.DIAGNOSTIC, line)
        except Exception as e:
            logger.warning(f"Error reading stderr for process {handle}: {e}")

    async def _monitor(self, handle: str, process: asyncio.subprocess.Process) -> None:
        return_code = await process.wait()
        logger.info(f"Process {handle} exited with code {return_code}")
        self._emit(handle, ProcessEvent.CLOSED, f"exit code {return_code}")

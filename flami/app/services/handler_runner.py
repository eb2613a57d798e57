"""Isolated page handler processes.

A page handler is an executable in the handler directory whose file stem
matches the page name. It runs as a separate process per request: the
serialized RequestContext is written to its standard input and whatever it
writes to standard output becomes the page data. Any output on standard
error fails the request.

Handler output is JSON or plain text. A JSON object holding any of the keys
``content``, ``headers``, ``cookies`` or ``redirectLocation`` is a rich
result; any other JSON value, or text that is not JSON, is the content.
"""

import asyncio
import json
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from flami.app.core.cookies import CookieDirective, has_control_chars
from flami.app.core.logging import get_logger
from flami.app.exceptions import (
    HandlerFailureError,
    HandlerNotFoundError,
    HandlerTimeoutError,
)

logger = get_logger(__name__)

RICH_RESULT_KEYS = frozenset(("content", "headers", "cookies", "redirectLocation"))

# Enough of stderr to log; the handler has failed as soon as any arrives
STDERR_PROBE_BYTES = 4096


HEADER_NAME_PATTERN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; such output is treated as plain text
    raise ValueError(f"non-standard JSON constant {name}")


@dataclass
class HandlerOutput:
    """Parsed output of a page handler."""
    content: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    cookies: list[CookieDirective] = field(default_factory=list)
    redirect_location: Optional[str] = None


def parse_handler_output(raw: bytes, handler: str = "handler") -> HandlerOutput:
    """Turn a handler's standard output into a HandlerOutput.

    Raises:
        HandlerFailureError: If a rich result has malformed fields.
    """
    text = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return HandlerOutput(content=text)

    if not isinstance(data, dict) or not (RICH_RESULT_KEYS & data.keys()):
        return HandlerOutput(content=data)

    headers = data.get("headers") or {}
    if not isinstance(headers, dict):
        raise HandlerFailureError(handler, "'headers' must be an object")
    headers = {str(k): str(v) for k, v in headers.items()}
    for name, value in headers.items():
        if not HEADER_NAME_PATTERN.fullmatch(name):
            raise HandlerFailureError(handler, f"invalid header name {name!r}")
        if has_control_chars(value):
            raise HandlerFailureError(handler, f"invalid value for header {name!r}")

    cookies = data.get("cookies") or []
    if isinstance(cookies, (str, dict)):
        cookies = [cookies]
    if not isinstance(cookies, list):
        raise HandlerFailureError(handler, "'cookies' must be a list")
    try:
        directives = [CookieDirective.from_handler(c) for c in cookies]
    except ValueError as e:
        raise HandlerFailureError(handler, f"invalid cookie: {e}") from e

    redirect = data.get("redirectLocation")
    if redirect is not None and (
        not isinstance(redirect, str) or not redirect or has_control_chars(redirect)
    ):
        raise HandlerFailureError(handler, "'redirectLocation' must be a single-line string")

    return HandlerOutput(
        content=data.get("content"),
        headers=headers,
        cookies=directives,
        redirect_location=redirect,
    )


class IsolatedHandler:
    """Locates and runs page handler executables.

    Each invocation spawns a fresh process, feeds it the request payload,
    waits for its output or its first error output, and always tears the
    process down before returning. The whole invocation is bounded by
    ``timeout`` seconds.

    Usage:
        runner = IsolatedHandler(Path("site/handlers"), timeout=10.0)
        executable = runner.locate("/blog/post")
        output = await runner.invoke(executable, context.to_handler_payload())
    """

    def __init__(
        self,
        handler_dir: Path,
        timeout: float = 10.0,
        interpreters: Optional[dict[str, str]] = None,
        cwd: Optional[Path] = None,
    ):
        """Initialize the runner.

        Args:
            handler_dir: Directory holding handler executables
            timeout: Seconds an invocation may take before it is killed
            interpreters: File extension to interpreter command; ``.py``
                always runs under the server's own interpreter
            cwd: Working directory for handler processes
        """
        self.handler_dir = handler_dir
        self.timeout = timeout
        self.interpreters = {k.lower(): v for k, v in (interpreters or {}).items()}
        self.cwd = cwd

    def locate(self, page_name: str) -> Path:
        """Find the handler for ``page_name`` (e.g. ``/blog/post``).

        The handler is a file in the matching subdirectory of the handler
        directory with the page's last segment as its stem, any extension.

        Raises:
            HandlerNotFoundError: If no such file exists.
        """
        relative = Path(page_name.lstrip("/"))
        directory = self.handler_dir / relative.parent
        stem = relative.name
        try:
            candidates = sorted(
                p for p in directory.iterdir()
                if p.is_file() and p.stem == stem
            )
        except OSError:
            candidates = []
        if not candidates:
            raise HandlerNotFoundError(page_name, "no handler executable")
        if len(candidates) > 1:
            logger.warning(
                f"Several handlers match {page_name}, using {candidates[0].name}"
            )
        return candidates[0]

    def command_for(self, executable: Path) -> list[str]:
        """Command line that runs ``executable``.

        Raises:
            HandlerNotFoundError: If the file has no known interpreter and
                is not executable itself.
        """
        suffix = executable.suffix.lower()
        if suffix == ".py":
            return [sys.executable, str(executable)]
        interpreter = self.interpreters.get(suffix)
        if interpreter:
            return [*interpreter.split(), str(executable)]
        if os.access(executable, os.X_OK):
            return [str(executable)]
        raise HandlerNotFoundError(
            str(executable), "handler has no interpreter and is not executable"
        )

    async def invoke(self, executable: Path, payload: bytes) -> HandlerOutput:
        """Run a handler and parse its output.

        Args:
            executable: Handler file from ``locate``
            payload: Bytes written to the handler's standard input

        Raises:
            HandlerFailureError: On error output, non-zero exit or bad output
            HandlerTimeoutError: If the handler exceeds the timeout
        """
        name = executable.name
        command = self.command_for(executable)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.cwd) if self.cwd else None,
            )
        except OSError as e:
            raise HandlerFailureError(name, f"could not start: {e}") from e

        try:
            stdout = await asyncio.wait_for(
                self._collect(proc, payload, name), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise HandlerTimeoutError(name, self.timeout) from None
        finally:
            await self._teardown(proc)

        return parse_handler_output(stdout, name)

    async def _collect(
        self,
        proc: asyncio.subprocess.Process,
        payload: bytes,
        name: str,
    ) -> bytes:
        """Race standard output against standard error.

        The first error output fails the invocation immediately; otherwise
        standard output is read to the end and the exit status checked.
        """
        feeder = asyncio.create_task(self._feed_stdin(proc, payload))
        out_task = asyncio.create_task(proc.stdout.read())
        err_task = asyncio.create_task(proc.stderr.read(STDERR_PROBE_BYTES))
        tasks = (feeder, out_task, err_task)

        try:
            done, _ = await asyncio.wait(
                {out_task, err_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if err_task in done:
                self._raise_on_stderr(name, err_task.result())

            stdout = await out_task
            # stdout closed: stderr reaches EOF with the process
            self._raise_on_stderr(name, await err_task)

            returncode = await proc.wait()
            if returncode != 0:
                raise HandlerFailureError(
                    name, f"exited with status {returncode}", returncode=returncode
                )
            return stdout
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _raise_on_stderr(name: str, data: bytes) -> None:
        if data:
            stderr = data.decode("utf-8", errors="replace")
            raise HandlerFailureError(name, "wrote to standard error", stderr=stderr)

    @staticmethod
    async def _feed_stdin(proc: asyncio.subprocess.Process, payload: bytes) -> None:
        # Handlers that never read their input may exit before we finish
        try:
            proc.stdin.write(payload)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            pass
        finally:
            proc.stdin.close()

    @staticmethod
    async def _teardown(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()

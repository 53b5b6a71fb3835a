"""Async subprocess utilities.

Non-blocking shell execution used to drive the Codefresh and AWS CLIs from
async code without stalling the event loop.

Example:
    >>> from ci_trigger.utils.async_subprocess import run_shell_command
    >>> stdout, stderr, code = await run_shell_command('codefresh get build 5f1e... --output json')
"""

import asyncio
import subprocess
from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

ShellRunner = Callable[..., Awaitable[tuple[str, str, int]]]
"""Signature shared by ``run_shell_command`` and its test doubles."""


async def run_shell_command(
    command: str,
    *,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
) -> tuple[str, str, int]:
    """Run a shell command asynchronously.

    The command string is handed to ``/bin/sh -c``, so quoting in generated
    ``codefresh run`` commands is interpreted by the shell.

    Args:
        command: Complete shell command string to execute.
        cwd: Working directory for command execution. If None, uses the
            current working directory.
        check: If True (default), raise CalledProcessError on non-zero
            exit code. If False, return exit code without raising.
        timeout: Maximum seconds to wait. Process is killed if exceeded.
            None means wait indefinitely.

    Returns:
        Tuple of (stdout, stderr, return_code) where stdout and stderr are
        decoded UTF-8 strings, and return_code is the process exit code.

    Raises:
        subprocess.CalledProcessError: If check=True and command returns
            non-zero exit code.
        TimeoutError: If timeout is exceeded.
    """
    # argument values may carry secrets, only the program name is logged
    program = command.split(maxsplit=1)[0] if command.strip() else ""
    log.debug("shell_command_started", program=program)

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout,
        )
    except TimeoutError:
        process.kill()
        await process.wait()
        log.warning("shell_command_timeout", program=program, timeout=timeout)
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        log.debug("shell_command_failed", program=program, returncode=process.returncode)
        raise subprocess.CalledProcessError(
            process.returncode,
            command,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0

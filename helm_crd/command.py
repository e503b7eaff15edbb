"""Library for issuing commands using asyncio and returning the result."""

import asyncio
from dataclasses import dataclass
import logging
import os
import shlex
import subprocess

from .config import DEFAULT_TIMEOUT_SECONDS
from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 4
_SEM = asyncio.Semaphore(_CONCURRENCY)


# No public API
__all__: list[str] = []


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    timeout: float = DEFAULT_TIMEOUT_SECONDS
    """Seconds to wait for the command to complete."""

    env: dict[str, str] | None = None
    """Environment variables for the subprocess."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        return self.string

    async def run(self) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        proc = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
        try:
            out, err = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError as err:
            proc.kill()
            await proc.wait()
            raise self.exc(f"Command '{self}' timed out") from err
        if proc.returncode:
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8"))
            if err:
                errors.append(err.decode("utf-8"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out


async def run(cmd: Command) -> str:
    """Run the specified command and return stdout."""
    async with _SEM:
        out = await cmd.run()
    return out.decode("utf-8")

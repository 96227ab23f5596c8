"""
External command runner.

Mount, unmount and other OS tools are invoked through ``run_command``,
which maps every failure to FileActionFailedException.
"""

import logging
import shlex
import subprocess
from typing import Optional, Sequence

from phoundation_fs.filesystem.config import get_config
from phoundation_fs.filesystem.exceptions import FileActionFailedException

logger = logging.getLogger(__name__)


def run_command(
    args: Sequence[str],
    *,
    sudo: bool = False,
    timeout: Optional[float] = None,
    path: Optional[str] = None,
    input: Optional[bytes] = None,
) -> str:
    """
    Run an external command and return its standard output.

    Args:
        args: Command and arguments, never passed through a shell
        sudo: Prefix the command with ``sudo -n``
        timeout: Timeout in seconds (None = configured command_timeout)
        path: Path the command operates on, used in error reporting
        input: Bytes fed to standard input

    Returns:
        Decoded standard output

    Raises:
        FileActionFailedException: If the command cannot be started, times
            out, or exits with a non-zero return code
    """
    args = [str(arg) for arg in args]
    if sudo:
        args = ["sudo", "-n"] + args

    command = shlex.join(args)
    timeout = timeout if timeout is not None else get_config().command_timeout

    logger.debug(f"Executing: {command}")

    try:
        result = subprocess.run(
            args,
            input=input,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise FileActionFailedException(
            f"Command not found: {args[0]}",
            path=path,
            command=command,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise FileActionFailedException(
            f"Command timed out after {timeout} seconds",
            path=path,
            command=command,
        ) from e

    stderr = result.stderr.decode("utf-8", errors="replace").strip()

    if result.returncode != 0:
        logger.error(f"Command failed ({result.returncode}): {command}: {stderr}")
        raise FileActionFailedException(
            f"Command failed: {stderr or 'no error output'}",
            path=path,
            command=command,
            return_code=result.returncode,
            stderr=stderr,
        )

    return result.stdout.decode("utf-8", errors="replace")

"""
Remote execution channel

Runs commands inside pods through `kubectl exec`. Payloads are streamed
between local file objects and the remote process in fixed-size chunks, so
archives of any size pass through without being held in memory.
"""

import io
import logging
import shlex
import shutil
import subprocess
from typing import IO, NamedTuple

from selfhostd.errors import ProcessError, TransportError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ExecResult(NamedTuple):
    returncode: int
    output: str = ""
    # only filled when stderr is kept apart from output
    errors: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _is_os_file(obj) -> bool:
    # gzip streams expose the fd of the compressed file, they must be pumped
    return isinstance(obj, (io.FileIO, io.BufferedReader, io.BufferedWriter))


class KubectlExecutor:

    def __init__(self, kubectl: list[str]):
        self.kubectl = list(kubectl)

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{' '.join(self.kubectl)}>"

    def exec_argv(self, namespace: str, pod: str, command: list[str], interactive: bool = False) -> list[str]:
        argv = [*self.kubectl, "exec"]
        if interactive:
            argv.append("-i")
        return [*argv, "-n", namespace, pod, "--", *command]

    def _popen(self, argv: list[str], **kwargs) -> subprocess.Popen:
        logger.debug(f"{self} running {shlex.join(argv)}")
        try:
            return subprocess.Popen(argv, **kwargs)
        except FileNotFoundError as e:
            raise TransportError(f"kubectl command not found: {argv[0]}") from e

    def stream(self, namespace: str, pod: str, command: list[str],
               stdin: IO[bytes] | None = None, stdout: IO[bytes] | None = None,
               timeout: float | None = None) -> int:
        """
        run command in pod wiring stdin/stdout to binary file objects and
        return the exit status. os-level files are handed to kubectl directly,
        anything else is pumped chunk by chunk. the remote process is killed
        when the caller is interrupted
        """
        pump_in = stdin is not None and not _is_os_file(stdin)
        pump_out = stdout is not None and not _is_os_file(stdout)
        if pump_in and pump_out:
            raise ValueError("only one direction can be pumped through python")

        if stdin is None:
            child_in = subprocess.DEVNULL
        else:
            child_in = subprocess.PIPE if pump_in else stdin

        if stdout is None:
            child_out = None
        else:
            child_out = subprocess.PIPE if pump_out else stdout

        argv = self.exec_argv(namespace, pod, command, interactive=stdin is not None)
        process = self._popen(argv, stdin=child_in, stdout=child_out)
        try:
            if pump_in:
                try:
                    shutil.copyfileobj(stdin, process.stdin, CHUNK_SIZE)
                except BrokenPipeError:
                    logger.debug(f"{self} remote side closed stdin early")
                finally:
                    try:
                        process.stdin.close()
                    except BrokenPipeError:
                        pass
            if pump_out:
                shutil.copyfileobj(process.stdout, stdout, CHUNK_SIZE)
                process.stdout.close()
            return process.wait(timeout=timeout)
        except BaseException:
            process.kill()
            process.wait()
            raise

    def capture(self, namespace: str, pod: str, command: list[str],
                input: str | None = None, timeout: float | None = None,
                merge_stderr: bool = True) -> ExecResult:
        """
        run command in pod, optionally feeding text to stdin, and return
        exit status with combined stdout/stderr. with merge_stderr=False
        output holds stdout only and stderr goes to errors
        """
        argv = self.exec_argv(namespace, pod, command, interactive=input is not None)
        return self.kubectl_run(argv[len(self.kubectl):], capture=True, input=input, timeout=timeout,
                                merge_stderr=merge_stderr)

    def kubectl_run(self, args: list[str], capture: bool = False,
                    input: str | None = None, timeout: float | None = None,
                    merge_stderr: bool = True) -> ExecResult:
        if capture:
            stderr = subprocess.STDOUT if merge_stderr else subprocess.PIPE
        else:
            stderr = None
        argv = [*self.kubectl, *args]
        logger.debug(f"{self} running {shlex.join(argv)}")
        try:
            completed = subprocess.run(
                argv,
                input=input,
                stdin=None if input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture else None,
                stderr=stderr,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise TransportError(f"kubectl command not found: {argv[0]}") from e
        return ExecResult(completed.returncode, completed.stdout or "", completed.stderr or "")

    def rollout(self, operation: str, deployment: str, namespace: str, capture: bool = False) -> ExecResult:
        return self.kubectl_run(["rollout", operation, f"deployment/{deployment}", "-n", namespace],
                                capture=capture)


def check(result: ExecResult, what: str) -> ExecResult:
    if not result.ok:
        raise ProcessError(f"{what} failed with exit status {result.returncode}",
                           returncode=result.returncode,
                           output="\n".join(o for o in (result.output, result.errors) if o))
    return result

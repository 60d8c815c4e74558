"""Subprocess execution service for TemplateGen."""

import subprocess
import threading
import time
from typing import IO, List, Optional, Sequence

from templategen.cancellation import CancellationToken
from templategen.models import CommandResult


class CommandRunner:
    """Runs external commands, draining both pipes while waiting for exit.

    Expected failures (missing executable, non-zero exit, timeout) are returned
    as ``CommandResult`` values. Cancellation kills the child and raises
    ``GenerationCancelled``.
    """

    POLL_INTERVAL_SECONDS = 0.05

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> CommandResult:
        args = tuple(str(part) for part in cmd)
        cmd_str = " ".join(args)
        self.logger.debug("Executing: %s (cwd=%s)", cmd_str, cwd or ".")

        if cancellation is not None:
            cancellation.raise_if_cancelled()

        try:
            process = subprocess.Popen(
                args,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError:
            self.logger.debug("Command not found: %s", args[0])
            return CommandResult(
                args=args,
                returncode=-1,
                stderr=f"Required command not found: {args[0]}",
                started=False,
            )
        except OSError as exc:
            self.logger.debug("Failed to start %s: %s", cmd_str, exc)
            return CommandResult(args=args, returncode=-1, stderr=str(exc), started=False)

        stdout_chunks: List[str] = []
        stderr_chunks: List[str] = []
        readers = [
            self._start_reader(process.stdout, stdout_chunks),
            self._start_reader(process.stderr, stderr_chunks),
        ]

        effective_timeout = timeout if timeout is not None else self.default_timeout
        deadline = None if effective_timeout is None else time.monotonic() + effective_timeout
        timed_out = False

        try:
            while True:
                try:
                    process.wait(timeout=self.POLL_INTERVAL_SECONDS)
                    break
                except subprocess.TimeoutExpired:
                    pass

                if cancellation is not None and cancellation.is_cancelled:
                    self.logger.warning("Cancellation requested, killing: %s", cmd_str)
                    self._kill(process)
                    cancellation.raise_if_cancelled()

                if deadline is not None and time.monotonic() >= deadline:
                    self.logger.warning(
                        "Command timed out after %ss, killing: %s", effective_timeout, cmd_str
                    )
                    self._kill(process)
                    timed_out = True
                    break
        except BaseException:
            self._kill(process)
            raise
        finally:
            for reader in readers:
                reader.join()

        stdout = "".join(stdout_chunks)
        stderr = "".join(stderr_chunks)
        if stdout.strip():
            self.logger.debug("Command output: %s", stdout.strip())

        result = CommandResult(
            args=args,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
        )
        if not result.success:
            self.logger.debug(
                "Command failed (%s): %s\n%s", result.returncode, cmd_str, stderr.strip()
            )
        return result

    @staticmethod
    def _start_reader(stream: Optional[IO[str]], sink: List[str]) -> threading.Thread:
        def drain():
            if stream is None:
                return
            try:
                for chunk in iter(lambda: stream.read(4096), ""):
                    sink.append(chunk)
            finally:
                stream.close()

        reader = threading.Thread(target=drain, daemon=True)
        reader.start()
        return reader

    @staticmethod
    def _kill(process: subprocess.Popen):
        if process.poll() is None:
            process.kill()
        process.wait()

"""Command execution with multi-stream output capture.

A command's stdout and stderr are read as they arrive and written to three
buffers (stdout only, stderr only and their interleaving) while also being
streamed to a sink, so long running commands show progress instead of a
stall followed by a dump.
"""

import codecs
import os
import re
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Sequence, Union

from testkit.core.models import CaptureResult
from testkit.exceptions import CaptureError

Sink = Callable[[str], None]

CHUNK_SIZE = 4096


def shell_argv(command: str) -> list[str]:
    """Wrap a shell command so that a failing pipeline stage fails the command."""
    bash = shutil.which("bash")
    if bash:
        return [bash, "-o", "pipefail", "-c", command]
    # POSIX sh has no pipefail; only the last stage's status is visible.
    return ["/bin/sh", "-c", command]


def command_name(argv: Union[str, Sequence[str]]) -> str:
    """Short name of a command, safe to use as part of a directory name."""
    first = argv if isinstance(argv, str) else (argv[0] if argv else "")
    words = str(first).split()
    name = os.path.basename(words[0]) if words else ""
    return re.sub(r"[^\w.+-]", "_", name) or "command"


class _Stream:
    """One of the command's output pipes and where its bytes go."""

    def __init__(self, path: Path):
        self.path = path
        self.buffer = bytearray()
        self.decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def text(self) -> str:
        return bytes(self.buffer).decode("utf-8", errors="replace")


class OutputCapture:
    """Runs commands and captures their output."""

    def __init__(
        self,
        working_directory: Path,
        environment: Optional[dict[str, str]] = None,
        sink: Optional[Sink] = None,
    ):
        """Initialize the capture.

        Args:
            working_directory: Directory to run commands in
            environment: Additional environment variables to set
            sink: Called with decoded output text as soon as it arrives
        """
        self.working_directory = working_directory
        self.environment = environment or {}
        self.sink = sink
        self._lock = threading.Lock()

    def invoke(
        self,
        argv: Union[str, Sequence[str]],
        output_dir: Path,
        shell: bool = False,
        input: Optional[str] = None,
        environment: Optional[dict[str, str]] = None,
    ) -> CaptureResult:
        """Run a command, writing stdout, stderr and combined into ``output_dir``.

        Raises:
            CaptureError: If ``output_dir`` already exists
        """
        if output_dir.exists():
            raise CaptureError(f"Output directory already exists: {output_dir}")
        output_dir.mkdir(parents=True)

        if shell:
            if not isinstance(argv, str):
                argv = " ".join(str(a) for a in argv)
            command = shell_argv(argv)
            recorded = [argv]
        else:
            if isinstance(argv, str):
                argv = [argv]
            command = [str(a) for a in argv]
            recorded = list(command)

        env = {**os.environ, **self.environment, **(environment or {})}
        stdout = _Stream(output_dir / "stdout")
        stderr = _Stream(output_dir / "stderr")
        combined = _Stream(output_dir / "combined")

        start_time = time.time()
        with (
            open(stdout.path, "wb") as out_f,
            open(stderr.path, "wb") as err_f,
            open(combined.path, "wb") as com_f,
        ):
            try:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    cwd=self.working_directory,
                    env=env,
                )
            except FileNotFoundError:
                message = f"{command[0]}: command not found\n".encode()
                self._write(stderr, err_f, combined, com_f, message)
                exit_code = 127
            except PermissionError:
                message = f"{command[0]}: permission denied\n".encode()
                self._write(stderr, err_f, combined, com_f, message)
                exit_code = 126
            else:
                readers = [
                    threading.Thread(
                        target=self._pump,
                        args=(process.stdout, stdout, out_f, combined, com_f),
                        daemon=True,
                    ),
                    threading.Thread(
                        target=self._pump,
                        args=(process.stderr, stderr, err_f, combined, com_f),
                        daemon=True,
                    ),
                ]
                for reader in readers:
                    reader.start()

                if input is not None:
                    try:
                        process.stdin.write(input.encode())
                    except BrokenPipeError:
                        pass
                    finally:
                        process.stdin.close()

                for reader in readers:
                    reader.join()
                exit_code = process.wait()

        self._flush_decoders(stdout, stderr)
        duration_ms = int((time.time() - start_time) * 1000)

        return CaptureResult(
            argv=recorded,
            stdout=stdout.text(),
            stderr=stderr.text(),
            combined=combined.text(),
            exit_code=exit_code,
            duration_ms=duration_ms,
            output_dir=output_dir,
        )

    def _pump(
        self,
        pipe: BinaryIO,
        stream: _Stream,
        stream_file: BinaryIO,
        combined: _Stream,
        combined_file: BinaryIO,
    ) -> None:
        """Copy one pipe until EOF."""
        fd = pipe.fileno()
        try:
            while True:
                chunk = os.read(fd, CHUNK_SIZE)
                if not chunk:
                    break
                self._write(stream, stream_file, combined, combined_file, chunk)
        finally:
            pipe.close()

    def _write(
        self,
        stream: _Stream,
        stream_file: BinaryIO,
        combined: _Stream,
        combined_file: BinaryIO,
        chunk: bytes,
    ) -> None:
        # Both readers append to the combined buffer; the lock keeps arrival order.
        with self._lock:
            stream.buffer.extend(chunk)
            stream_file.write(chunk)
            stream_file.flush()
            combined.buffer.extend(chunk)
            combined_file.write(chunk)
            combined_file.flush()
            if self.sink:
                text = stream.decoder.decode(chunk)
                if text:
                    self.sink(text)

    def _flush_decoders(self, *streams: _Stream) -> None:
        if not self.sink:
            return
        for stream in streams:
            text = stream.decoder.decode(b"", final=True)
            if text:
                self.sink(text)

"""
Streaming audio transcoder backed by an ffmpeg subprocess.

Each call gets its own long-lived ffmpeg process that reads raw provider audio
(8kHz mono mu-law for Twilio) on stdin and continuously writes signed 16-bit
little-endian PCM on stdout. Diagnostic output on stderr is forwarded line by
line to the application logger by a background task so the pipe never fills.
"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from typing import List, Optional

from media_bridge.config.constants import (
    DRAIN_TIMEOUT_SECONDS,
    FFMPEG_PATH,
    LOGGER_NAME,
    READ_BUFFER_SIZE,
    READ_TIMEOUT_SECONDS,
    WRITE_TIMEOUT_SECONDS,
)
from media_bridge.exceptions import PipeStartError, PipeWriteError

logger = logging.getLogger(LOGGER_NAME)

# ffmpeg flags that disable probing and internal buffering
LOW_LATENCY_FLAGS = [
    "-loglevel", "error",
    "-fflags", "nobuffer",
    "-avioflags", "direct",
    "-fflags", "discardcorrupt",
    "-probesize", "32",
    "-analyzeduration", "0",
]


@dataclass(frozen=True)
class AudioFormat:
    """Raw audio layout on one side of the transcoder."""

    encoding: str
    sample_rate: int
    channels: int = 1


class TranscodingPipe:
    """
    Owns one ffmpeg process and mediates all I/O with it.

    Lifecycle is strictly start -> convert* -> drain_and_stop. The process is
    never shared between calls or reused after it has been stopped.
    """

    def __init__(
        self,
        ffmpeg_path: str = FFMPEG_PATH,
        read_buffer_size: int = READ_BUFFER_SIZE,
        read_timeout: float = READ_TIMEOUT_SECONDS,
        drain_timeout: float = DRAIN_TIMEOUT_SECONDS,
        write_timeout: float = WRITE_TIMEOUT_SECONDS,
        tag: str = "ffmpeg",
    ):
        self.ffmpeg_path = ffmpeg_path
        self.read_buffer_size = read_buffer_size
        self.read_timeout = read_timeout
        self.drain_timeout = drain_timeout
        self.write_timeout = write_timeout
        self.tag = tag
        self.process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._stopped = False
        self.bytes_written = 0
        self.bytes_read = 0

    @property
    def is_running(self) -> bool:
        return (
            self.process is not None
            and not self._stopped
            and self.process.returncode is None
        )

    @staticmethod
    def build_command(
        ffmpeg_path: str, input_format: AudioFormat, output_format: AudioFormat
    ) -> List[str]:
        """Build the ffmpeg argument list for a raw-in, raw-PCM-out stream."""
        return [
            ffmpeg_path,
            *LOW_LATENCY_FLAGS,
            "-f", input_format.encoding,
            "-ar", str(input_format.sample_rate),
            "-ac", str(input_format.channels),
            "-i", "pipe:0",
            "-ar", str(output_format.sample_rate),
            "-ac", str(output_format.channels),
            "-acodec", "pcm_s16le",
            "-f", "s16le",
            "pipe:1",
        ]

    async def start(self, input_format: AudioFormat, output_format: AudioFormat) -> None:
        """
        Launch the transcoder process.

        Args:
            input_format: Layout of the audio written to stdin
            output_format: Layout of the PCM expected on stdout

        Raises:
            PipeStartError: If ffmpeg cannot be found, fails to launch or exits immediately
        """
        if self.process is not None:
            raise PipeStartError(f"{self.tag} already started")

        binary = shutil.which(self.ffmpeg_path)
        if binary is None:
            raise PipeStartError(f"{self.tag} binary not found: {self.ffmpeg_path}")

        command = self.build_command(binary, input_format, output_format)
        logger.debug(f"Launching {self.tag}: {' '.join(command)}")

        try:
            self.process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PipeStartError(f"{self.tag} failed to launch: {e}") from e

        if self.process.returncode is not None:
            raise PipeStartError(
                f"{self.tag} exited immediately with code {self.process.returncode}"
            )

        self._stderr_task = asyncio.create_task(self._log_stderr())
        logger.info(
            f"{self.tag} started (PID={self.process.pid}): "
            f"{input_format.encoding}/{input_format.sample_rate}Hz/{input_format.channels}ch -> "
            f"s16le/{output_format.sample_rate}Hz/{output_format.channels}ch"
        )

    async def convert(self, batch: bytes) -> bytes:
        """
        Write one batch to the transcoder and read back whatever output is ready.

        Exactly one read is attempted, bounded by ``read_timeout``. Output is not
        aligned with input batches: the result may be empty, and output produced
        for this batch may only be returned by a later call.

        Args:
            batch: Raw provider-encoded audio

        Returns:
            Up to ``read_buffer_size`` bytes of converted PCM, possibly empty

        Raises:
            PipeWriteError: If the process has exited, its stdin is broken or it
                stops accepting input for longer than ``write_timeout``
        """
        if not self.is_running:
            raise PipeWriteError(f"{self.tag} is not running")

        try:
            self.process.stdin.write(batch)
            await asyncio.wait_for(self.process.stdin.drain(), timeout=self.write_timeout)
        except (BrokenPipeError, ConnectionResetError) as e:
            raise PipeWriteError(f"{self.tag} write failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise PipeWriteError(f"{self.tag} stopped reading stdin for {self.write_timeout}s") from e
        self.bytes_written += len(batch)

        try:
            output = await asyncio.wait_for(
                self.process.stdout.read(self.read_buffer_size),
                timeout=self.read_timeout,
            )
        except asyncio.TimeoutError:
            return b""

        self.bytes_read += len(output)
        return output

    async def drain_and_stop(self, keep_output: bool = False) -> bytes:
        """
        Close stdin, drain stdout to end-of-stream and wait for the process to exit.

        Process resources are released in every case, including when draining
        raises. Calling this more than once is a no-op.

        Args:
            keep_output: Return the drained output instead of discarding it

        Returns:
            The drained output if ``keep_output`` is set, otherwise b""
        """
        if self._stopped:
            logger.debug(f"{self.tag} already stopped")
            return b""
        self._stopped = True

        process = self.process
        if process is None:
            return b""

        drained: List[bytes] = []
        discarded = 0
        start_time = time.time()

        async def _close_stdin():
            if process.stdin is None:
                return
            if not process.stdin.is_closing():
                process.stdin.close()
            try:
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug(f"{self.tag} stdin already broken while closing")

        async def _read_to_eof():
            nonlocal discarded
            while True:
                chunk = await process.stdout.read(self.read_buffer_size)
                if not chunk:
                    break
                if keep_output:
                    drained.append(chunk)
                else:
                    discarded += len(chunk)

        async def _shutdown():
            # stdout is read while stdin closes so a full pipe cannot stall the close
            await asyncio.gather(_close_stdin(), _read_to_eof())
            await process.wait()

        try:
            await asyncio.wait_for(_shutdown(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.tag} did not exit within {self.drain_timeout}s")
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
                logger.warning(f"{self.tag} killed (PID={process.pid})")
            await self._stop_stderr_reader()

        output = b"".join(drained)
        self.bytes_read += len(output) + discarded
        logger.info(
            f"{self.tag} stopped (PID={process.pid}, exit={process.returncode}) in "
            f"{(time.time() - start_time) * 1000:.1f}ms; "
            f"{self.bytes_written} bytes in, {self.bytes_read} bytes out, "
            f"{discarded} drained bytes discarded"
        )
        return output

    async def _stop_stderr_reader(self) -> None:
        task = self._stderr_task
        self._stderr_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _log_stderr(self) -> None:
        """Forward ffmpeg diagnostics to the logger until stderr closes."""
        stream = self.process.stderr
        try:
            while True:
                line = await stream.readline()
                if not line:
                    break
                text = line.decode(errors="replace").rstrip()
                if text:
                    logger.warning(f"{self.tag}: {text}")
        except Exception as e:
            logger.error(f"Error reading {self.tag} stderr: {e}")

"""Run ffmpeg with a hard timeout, cancellation, and staged failures.

WHY: A hung encode must not wedge a batch of scenes, and a failed
encode must tell the operator which stage broke and what ffmpeg said.
subprocess.run(timeout=...) covers the first half but cannot be
cancelled from another thread while it waits.

HOW: FFmpegRunner.run() starts ffmpeg with Popen and waits in short
communicate() slices. Between slices it checks the optional cancel
event and the deadline; either one kills the process. A non-zero exit
becomes ExternalToolFailure carrying the stage and stderr verbatim.

RULES:
- Every invocation gets -y and -hide_banner
- stdout is discarded; stderr is captured in full and decoded as UTF-8
  with undecodable bytes replaced
- Timeout and cancellation kill the process and report returncode=None
- A missing binary is an ExternalToolFailure for the requested stage
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import List, Optional

from scene_engine import config
from scene_engine.core.errors import AssemblyStage, ExternalToolFailure

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.25


class FFmpegRunner:
    """Execute ffmpeg command lines for one assembly stage at a time."""

    def __init__(
        self,
        binary: str = config.FFMPEG_BINARY,
        timeout_s: float = config.FFMPEG_TIMEOUT_S,
        poll_interval_s: float = POLL_INTERVAL_S,
    ) -> None:
        self.binary = binary
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s

    def run(
        self,
        args: List[str],
        stage: AssemblyStage,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Run ``ffmpeg -y -hide_banner <args>`` and return its stderr.

        Raises:
            ExternalToolFailure: On start failure, non-zero exit, timeout
                                 or cancellation.
        """
        cmd = [self.binary, "-y", "-hide_banner"] + list(args)
        logger.info("ffmpeg [%s]: %s", stage.value, " ".join(cmd))

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise ExternalToolFailure(
                stage, "Could not start {}: {}".format(self.binary, exc)
            ) from exc

        deadline = time.monotonic() + self.timeout_s
        while True:
            try:
                _, stderr = process.communicate(timeout=self.poll_interval_s)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    reason = "cancelled"
                elif time.monotonic() >= deadline:
                    reason = "timed out after {:.0f}s".format(self.timeout_s)
                else:
                    continue
                process.kill()
                _, stderr = process.communicate()
                logger.warning("ffmpeg [%s] %s", stage.value, reason)
                raise ExternalToolFailure(
                    stage, "ffmpeg {}".format(reason), returncode=None, stderr=stderr or ""
                )

        if process.returncode != 0:
            raise ExternalToolFailure(
                stage,
                "ffmpeg exited with code {}".format(process.returncode),
                returncode=process.returncode,
                stderr=stderr or "",
            )
        return stderr or ""

import logging
import subprocess

from .errors import PipelineError, ToolTimeoutError, ToolUnavailableError

logger = logging.getLogger(__name__)

STDERR_TAIL = 4000


def run_tool(cmd: list[str], *, timeout: int, error_cls: type[PipelineError]) -> subprocess.CompletedProcess:
    """
    Run ffmpeg/ffprobe and return the completed process.
    Non-zero exits raise error_cls with the tail of stderr; a timeout kills the
    process and raises ToolTimeoutError.
    """
    logger.debug("Running %s", " ".join(cmd))
    try:
        return subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolTimeoutError(f"{cmd[0]} timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
        raise error_cls(f"{cmd[0]} exited with {e.returncode}: {err[-STDERR_TAIL:].strip()}") from e
    except OSError as e:
        raise ToolUnavailableError(f"cannot run {cmd[0]}: {e}") from e

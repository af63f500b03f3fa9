"""
Public tunnel - exposes the relay server through localtunnel (npx)
"""
import queue
import re
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional

import psutil

from .errors import TunnelError
from .output import Output

URL_RE = re.compile(r"(https?://[^\s]+)")


def find_public_url(line: str) -> Optional[str]:
    """Return the first URL printed on a localtunnel output line."""
    m = URL_RE.search(line)
    if m:
        return m.group(1)
    return None


def mirror_output(stream: IO[str], log_file: Path, lines: queue.Queue) -> None:
    """Copy process output into `log_file` and `lines` until end of stream."""
    with open(log_file, 'a') as log:
        for line in iter(stream.readline, ''):
            log.write(line)
            log.flush()
            lines.put(line)


class LocalTunnel:

    """Opens and closes localtunnel processes, one per public URL."""

    def __init__(
        self,
        output: Output,
        log_file: Path,
        start_timeout: float = 20.0,
        stop_timeout: float = 3.0,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.output = output
        self.log_file = log_file
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout
        self.popen = popen
        self.processes: Dict[str, int] = {}

    def ensure_npx(self) -> str:
        """Return the path to 'npx'."""
        npx = shutil.which('npx')
        if not npx:
            raise TunnelError(
                "npx not found. Install Node.js (which ships npm/npx) to expose the webhook server."
            )
        return npx

    def command(self, port: int) -> List[str]:
        return [self.ensure_npx(), 'localtunnel', '--port', str(port)]

    def open(self, port: int) -> str:
        """Expose `port` publicly and return the public URL."""
        cmd = self.command(port)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        process = self.popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            start_new_session=True,
        )

        # readline() blocks, so output is read on a thread and the deadline
        # is enforced on the queue.
        lines: queue.Queue = queue.Queue()
        if process.stdout:
            threading.Thread(
                target=mirror_output,
                args=(process.stdout, self.log_file, lines),
                name='localtunnel-output',
                daemon=True,
            ).start()

        public_url: Optional[str] = None
        deadline = time.time() + self.start_timeout
        try:
            while time.time() < deadline:
                if process.poll() is not None:
                    raise TunnelError(f"localtunnel exited early. See the log: {self.log_file}")

                try:
                    line = lines.get(timeout=min(0.1, max(deadline - time.time(), 0)))
                except queue.Empty:
                    continue

                # localtunnel prints several lines; the public URL is what matters.
                public_url = find_public_url(line)
                if public_url:
                    break
        except BaseException:
            self._terminate(process.pid)
            raise

        if not public_url:
            self._terminate(process.pid)
            raise TunnelError(
                f"Timed out waiting for the localtunnel URL. See the log: {self.log_file}"
            )

        self.processes[public_url] = process.pid
        self.output.debug(f"Tunnel created (url = {public_url}, port = {port})")
        return public_url

    def close(self, public_url: str) -> None:
        """Terminate the process serving `public_url`."""
        pid = self.processes.pop(public_url, None)
        if pid is None:
            raise TunnelError(f"No tunnel is open at '{public_url}'")

        self._terminate(pid)
        self.output.debug(f"Tunnel destroyed (url = {public_url})")

    def _terminate(self, pid: int) -> None:
        try:
            p = psutil.Process(pid)
            p.terminate()
            try:
                p.wait(timeout=self.stop_timeout)
            except psutil.TimeoutExpired:
                p.kill()
        except psutil.NoSuchProcess:
            pass

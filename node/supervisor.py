"""
Node Process Supervisor
"""
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import atexit
import logging
import os
import shutil
import signal
import subprocess
import threading

from core.errors import MissingExecutable

logger = logging.getLogger(__name__)


class NodeState(str, Enum):
    """Lifecycle of the supervised node process"""
    STARTING = "starting"
    RUNNING = "running"
    TERMINATED = "terminated"


def _detach_kwargs() -> Dict[str, Any]:
    """Popen options that put the child in its own session/process group"""
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class NodeSupervisor:
    """
    Owns the node child process.

    The child is always signalled to stop before the launcher exits: on
    SIGINT/SIGTERM, at interpreter exit, and when the `with` block is left.
    `shutdown()` is idempotent and never signals a child that already exited.
    """
    HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, args: Sequence[str], grace_period: float = 10.0):
        if not args:
            raise ValueError("Node command line must not be empty")
        self.args: List[str] = [str(a) for a in args]
        self.grace_period = grace_period
        self.state: Optional[NodeState] = None
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.RLock()
        self._closed = False
        self._previous_handlers: Dict[int, Any] = {}

    def __enter__(self) -> 'NodeSupervisor':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def process(self) -> Optional[subprocess.Popen]:
        return self._process

    def start(self) -> int:
        """Spawn the node detached and arm the cleanup handler. Returns the pid."""
        if self._process is not None:
            raise RuntimeError("Node process already started")

        executable = self.args[0]
        if not Path(executable).is_file() and shutil.which(executable) is None:
            raise MissingExecutable(f"Node executable not found: {executable}")

        self.state = NodeState.STARTING
        try:
            self._process = subprocess.Popen(self.args, **_detach_kwargs())
        except OSError as e:
            self.state = NodeState.TERMINATED
            raise MissingExecutable(f"Could not launch {executable}: {e}") from e

        self.state = NodeState.RUNNING
        self._register_cleanup()
        logger.info(f"Node process started with pid {self._process.pid}")
        return self._process.pid

    def await_termination(self) -> int:
        """Block until the node exits and return its exit status"""
        if self._process is None:
            raise RuntimeError("Node process was never started")
        returncode = self._process.wait()
        self.state = NodeState.TERMINATED
        logger.info(f"Node process {self._process.pid} exited with status {returncode}")
        return returncode

    def shutdown(self):
        """Stop the node if it is still running. Safe to call any number of times."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._stop_process()
            finally:
                self._unregister_cleanup()

    def _stop_process(self):
        process = self._process
        if process is None:
            return
        if process.poll() is not None:
            self.state = NodeState.TERMINATED
            return

        logger.info(f"Stopping node process {process.pid}")
        process.terminate()
        try:
            process.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            logger.warning(f"Node process {process.pid} ignored SIGTERM, killing it")
            process.kill()
            process.wait()
        self.state = NodeState.TERMINATED

    def _handle_signal(self, signum, frame):
        if self._closed:
            # shutdown already running in this thread; let it finish
            return
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self.shutdown()
        raise SystemExit(0)

    def _register_cleanup(self):
        atexit.register(self.shutdown)
        # signal handlers can only be installed from the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        for sig in self.HANDLED_SIGNALS:
            self._previous_handlers[sig] = signal.getsignal(sig)
            signal.signal(sig, self._handle_signal)

    def _unregister_cleanup(self):
        atexit.unregister(self.shutdown)
        if threading.current_thread() is not threading.main_thread():
            return
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

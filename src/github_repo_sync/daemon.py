import enum
import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from types import FrameType

from .config import Config
from .constants import APP_NAME
from .exceptions import DirectoryError, ListError
from .sync import SyncOrchestrator

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


class State(enum.Enum):
    """Lifecycle states of the run loop."""

    IDLE = "idle"
    SYNCING = "syncing"
    SHUTTING_DOWN = "shutting down"


def setup_logging(config: Config) -> None:
    """Configures the logging subsystem.

    Always logs to stderr (captured by systemd/journald). When `log_file` is
    configured, also writes a rotating log file.

    Args:
        config (Config): The run configuration.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Re-running setup must not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


class RunLoop:
    """Repeats sync cycles every poll interval until shut down.

    A shutdown request (signal or `request_shutdown`) never interrupts a
    running clone or pull: the in-flight cycle drains its queue first.

    Attributes:
        state (State): The current lifecycle state.
        stop_event (threading.Event): Shared cancellation signal.
    """

    def __init__(
        self,
        config: Config,
        orchestrator: SyncOrchestrator | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.config = config
        self.stop_event = stop_event or threading.Event()
        self.orchestrator = orchestrator or SyncOrchestrator(
            config, stop_event=self.stop_event
        )
        self.state = State.IDLE
        self.cycles = 0

    def request_shutdown(self, reason: str = "requested") -> None:
        if not self.stop_event.is_set():
            logger.info(
                f"Received shutdown signal ({reason}). Finishing current tasks..."
            )
        self.stop_event.set()

    def _handle_signal(self, signum: int, _frame: FrameType | None) -> None:
        self.request_shutdown(signal.Signals(signum).name)

    def install_signal_handlers(self) -> None:
        """Routes SIGINT and SIGTERM to a graceful shutdown.

        Must be called from the main thread.
        """
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)

    def run(self) -> int:
        """The main service loop.

        Returns:
            int: Process exit code; 0 after a graceful shutdown, 1 after a
                fatal cycle error.
        """
        exit_code = 0
        try:
            while not self.stop_event.is_set():
                self.state = State.SYNCING
                try:
                    self.orchestrator.run_cycle()
                except DirectoryError as e:
                    logger.critical(f"FATAL: {e}")
                    exit_code = 1
                    break
                except ListError as e:
                    logger.error(f"Error during sync: {e}")
                else:
                    logger.info("Syncing repos finished")
                finally:
                    self.cycles += 1

                self.state = State.IDLE
                # Returns early (True) when a shutdown signal arrives.
                if self.stop_event.wait(self.config.poll_interval):
                    break
        finally:
            self.state = State.SHUTTING_DOWN
            self.stop_event.set()
            self.orchestrator.close()
            logger.info("Service stopped")

        return exit_code

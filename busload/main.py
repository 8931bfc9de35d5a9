import asyncio
import logging
import signal
import sys
import threading
from typing import Optional

import uvicorn
from pydantic import ValidationError

from .api import create_status_app
from .broker import create_broker
from .broker.base import BrokerClient
from .config import RunConfig
from .events import EventLog
from .exceptions import RunAborted
from .models.results import RunResult
from .report import print_config, print_results
from .runs import create_run

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


class LoadTestApplication:
    """
    Application state for one load-test process.

    Wires the broker client, the run and the optional status server, and
    turns SIGINT/SIGTERM into an early end of the test: in-flight sends
    still drain and resources are still torn down in order.
    """

    def __init__(self, config: RunConfig, broker: Optional[BrokerClient] = None):
        self.config = config
        self.broker = broker if broker is not None else create_broker(config)
        self.events = EventLog()
        self.load_run = create_run(config, self.broker, events=self.events)
        self._status_server: Optional[uvicorn.Server] = None
        self._status_thread: Optional[threading.Thread] = None

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, ending test early")
            loop.call_soon_threadsafe(self.load_run.request_stop)

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    def _start_status_server(self) -> None:
        """
        Serve the status API from its own thread and event loop.

        uvicorn only installs signal handlers on the main thread, so the
        application's handlers stay in effect.
        """
        app = create_status_app(self.load_run)
        server_config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.status_port,
            log_level="warning",
        )
        self._status_server = uvicorn.Server(server_config)
        self._status_thread = threading.Thread(
            target=self._status_server.run,
            name="busload-status",
            daemon=True,
        )
        self._status_thread.start()
        logger.info(f"Status API listening on port {self.config.status_port}")

    async def _stop_status_server(self) -> None:
        if self._status_server is not None and self._status_thread is not None:
            self._status_server.should_exit = True
            await asyncio.to_thread(self._status_thread.join, 5.0)

    async def run(self) -> RunResult:
        self._setup_signal_handlers()
        if self.config.status_port is not None:
            self._start_status_server()
        try:
            return await self.load_run.run()
        finally:
            await self._stop_status_server()


def main() -> int:
    try:
        config = RunConfig.from_env()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2

    configure_logging(config.verbose)
    print_config(config)

    app = LoadTestApplication(config)
    try:
        result = asyncio.run(app.run())
    except RunAborted as e:
        logger.error(str(e))
        return 1

    print_results(config, app.load_run.recorder, result, app.events)
    return 0


if __name__ == "__main__":
    sys.exit(main())

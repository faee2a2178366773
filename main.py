import asyncio
import logging
import platform
import signal
import sys

from status_alerts.config import Settings
from status_alerts.exceptions import ConfigError
from status_alerts.orchestrator import StatusMonitor

log = logging.getLogger("main")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


async def main(settings: Settings) -> None:
    monitor = StatusMonitor(settings)
    loop    = asyncio.get_running_loop()

    if platform.system() != "Windows":

        def _shutdown(sig: signal.Signals) -> None:
            log.info("Received %s, shutting down gracefully...", sig.name)
            monitor.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig)

    # without signal handlers (Windows), Ctrl+C cancels this task and
    # PollLoop.run drains the in-flight cycle while unwinding
    await monitor.run()
    log.info("Monitor stopped.")


def cli() -> None:
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        configure_logging("INFO")
        log.error("Invalid configuration: %s", exc)
        sys.exit(2)

    configure_logging(settings.log_level)
    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        log.info("Interrupted, monitor stopped.")


if __name__ == "__main__":
    cli()

# src/duecheck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the date and reminder schedulers,
then runs the console REPL (optional) until /exit, EOF or a signal.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import ConsoleEndDateEditor, run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.stop_schedulers()
    except Exception:
        logger.exception("Failed to stop schedulers.")

    # Stores use short-lived sqlite connections per call; close() is a no-op hook.
    for store in (state.tracker, state.notifications):
        try:
            store.close()
        except Exception:
            logger.debug("Store close failed.", exc_info=True)


async def _run(state: AppState) -> None:
    stop_main = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(signum: int) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on some platforms (e.g. Windows).
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _handle_signal, sig)

    state.start_schedulers()
    try:
        if state.settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state), name="console")
            stopper = asyncio.create_task(stop_main.wait(), name="stop-wait")
            done, pending = await asyncio.wait(
                {console, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            for t in pending:
                t.cancel()
        else:
            logger.info("Console disabled. Running schedulers only. Press Ctrl+C to stop.")
            await stop_main.wait()
    finally:
        _shutdown(state)
        # let an in-flight scan finish its current entity writes
        for ticker in (state.date_scheduler.ticker, state.reminder_scheduler.ticker):
            with contextlib.suppress(Exception):
                await asyncio.wait_for(ticker.wait_idle(), timeout=10.0)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings, editor=ConsoleEndDateEditor(settings.tz))

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        pass
    logger.info("Bye.")


if __name__ == "__main__":
    main()

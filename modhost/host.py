"""modhost — Host process.

Wires the settings, the logging stack and one :class:`ModuleLoader` into a
long-running process:

    start  → initialise the runtime, discover and load every module
    wait   → until SIGINT / SIGTERM (or :meth:`ModuleHost.request_stop`)
    stop   → unload every module in reverse load order

A module that fails to load is fatal when ``runtime.fail_on_load_error`` is
set (the default): the host unloads whatever did load and exits non-zero.
Cleanup failures during shutdown are logged and never change the exit code.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any

from modhost.config import Settings
from modhost.exceptions import HostStartupError, ModHostError
from modhost.logging import configure_logging, get_logger
from modhost.modules.loader import ModuleLoader

log = get_logger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ModuleHost:
    """Owns the lifecycle of one :class:`ModuleLoader` for the whole process."""

    def __init__(self, settings: Settings, init_options: dict[str, Any] | None = None) -> None:
        self._settings = settings
        self._init_options = dict(init_options or {})
        self.loader = ModuleLoader(
            settings.runtime.modules_dir,
            disabled=settings.runtime.disabled,
        )
        self._stop_event = asyncio.Event()
        self._stopped = False

    async def start(self) -> list[str]:
        """Initialise the runtime and load every discovered module.

        Returns:
            IDs of the modules that loaded, in load order.

        Raises:
            HostStartupError: Some modules failed and ``fail_on_load_error`` is set.
            ModHostError:     The runtime itself could not start.
        """
        runtime = self._settings.runtime
        log.info(
            "host_starting",
            modules_dir=str(runtime.modules_dir),
            config_path=str(runtime.config_path),
        )
        await self.loader.initialize_runtime(runtime.config_path)
        loaded = await self.loader.discover_and_load_all(init_options=self._init_options)

        failed = self.loader.list_failed()
        if failed and runtime.fail_on_load_error:
            await self.stop()
            raise HostStartupError(failed)
        if failed:
            log.warning("host_started_degraded", failed=sorted(failed))

        log.info("host_started", modules=loaded)
        return loaded

    async def stop(self) -> dict[str, str]:
        """Unload every module.  Safe to call more than once."""
        if self._stopped:
            return {}
        self._stopped = True
        log.info("host_stopping")
        failures = await self.loader.unload_all_modules()
        if failures:
            log.warning("host_stopped_with_cleanup_errors", failed=sorted(failures))
        else:
            log.info("host_stopped")
        return failures

    def request_stop(self) -> None:
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in _STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Event loops without signal support (e.g. Windows proactor).
                log.debug("signal_handler_unavailable", signal=sig.name)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in _STOP_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

    def _on_signal(self, sig: signal.Signals) -> None:
        log.info("signal_received", signal=sig.name)
        self.request_stop()

    async def run_forever(self) -> None:
        """Start, block until a stop is requested, then shut down."""
        try:
            await self.start()
        except ModHostError:
            await self.stop()
            raise
        self._install_signal_handlers()
        try:
            await self._stop_event.wait()
        finally:
            self._remove_signal_handlers()
            await self.stop()


def run_host(settings: Settings, init_options: dict[str, Any] | None = None) -> int:
    """Run the host until it is signalled to stop.

    Returns:
        The process exit code: 0 after a clean run, 1 when startup failed.
    """
    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    async def _main() -> None:
        host = ModuleHost(settings, init_options=init_options)
        await host.run_forever()

    try:
        asyncio.run(_main())
    except HostStartupError as exc:
        log.error("host_start_failed", failed=exc.failed)
        return 1
    except ModHostError as exc:
        log.error("host_start_failed", error_type=type(exc).__name__, reason=exc.message)
        return 1
    return 0

"""Owner of the user's remote configuration.

:class:`ConfigStore` keeps the config document in memory, answers
``load()``/``save()`` immediately, and persists saves in the background.
Bursts of saves are debounced so only the last content of a burst is sent.

Example:
    >>> store = ConfigStore(api.patch_config, debounce=1.0)
    >>> store.set_state(RemoteConfig(id=7, content="{}"), AppVersion("1.0.3"))
    >>> await store.save('{"theme": "dark"}')
    >>> await store.load()
    '{"theme": "dark"}'
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from opentelemetry.sdk._logs import LoggerProvider
from reactivex import operators as ops
from reactivex.abc import DisposableBase
from reactivex.scheduler.eventloop import AsyncIOScheduler
from reactivex.subject import Subject

from .telemetry import LogContext, OTelLogger, get_default_providers
from .utils import get_short_error_info

ConfigPersister = Callable[[int | str, str], Awaitable[dict[str, Any]]]


class ConfigStateError(RuntimeError):
    """The store was used before :meth:`ConfigStore.set_state`."""


@dataclass
class RemoteConfig:
    """A config document as stored by the web API."""

    id: int | str
    content: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def merge(self, fields: dict[str, Any], keep_content: bool = False) -> None:
        """Apply fields returned by the server."""
        for key, value in fields.items():
            if key == "id":
                self.id = value
            elif key == "content":
                if not keep_content:
                    self.content = value
            else:
                self.extra[key] = value


@dataclass(frozen=True)
class AppVersion:
    version: str


class ConfigStore:
    """In-memory config with debounced background persistence.

    Args:
        persister: ``async (config_id, content) -> fields`` storing the
            content remotely; returned fields are merged into the config.
        debounce: Quiet period in seconds before a save is persisted.
        logger_provider: OTel logger provider; console providers by default.
    """

    def __init__(
        self,
        persister: ConfigPersister,
        debounce: float = 1.0,
        logger_provider: LoggerProvider | None = None,
    ):
        if debounce < 0:
            raise ValueError(f"debounce must be >= 0, got {debounce}")
        self._persister = persister
        self._debounce = debounce

        if logger_provider is None:
            _, logger_provider = get_default_providers("rxtunnel")
        self._log = OTelLogger(
            logger_provider.get_logger("rxtunnel.config"),
            source="ConfigStore",
            context=LogContext(component="ConfigStore"),
        )

        self._config: RemoteConfig | None = None
        self._version: AppVersion | None = None

        self._updates: Subject[str] = Subject()
        self._autosave: DisposableBase | None = None
        self._persisting: set[asyncio.Task] = set()

    def set_state(self, config: RemoteConfig, version: AppVersion) -> None:
        self._config = config
        self._version = version

    def _require_config(self) -> RemoteConfig:
        if self._config is None:
            raise ConfigStateError("config not loaded; call set_state() first")
        return self._config

    @property
    def config(self) -> RemoteConfig | None:
        return self._config

    @property
    def app_version(self) -> str:
        if self._version is None:
            raise ConfigStateError("app version not set; call set_state() first")
        return self._version.version

    async def load(self) -> str:
        return self._require_config().content

    async def save(self, content: str) -> None:
        """Replace the content now and schedule a debounced persist."""
        config = self._require_config()
        config.content = content
        self._ensure_autosave()
        self._updates.on_next(content)

    def _ensure_autosave(self) -> None:
        if self._autosave is not None:
            return
        loop = asyncio.get_running_loop()
        scheduler = AsyncIOScheduler(loop)
        self._autosave = self._updates.pipe(
            ops.debounce(self._debounce, scheduler=scheduler),
        ).subscribe(
            on_next=lambda content: self._start_persist(loop, content),
            on_error=lambda e: self._log.error(f"Autosave pipeline error: {e}"),
            scheduler=scheduler,
        )

    def _start_persist(self, loop: asyncio.AbstractEventLoop, content: str) -> None:
        task = loop.create_task(self._persist(content))
        self._persisting.add(task)
        task.add_done_callback(self._persisting.discard)

    async def _persist(self, content: str) -> None:
        config = self._require_config()
        self._log.debug(f"Persisting config {config.id} ({len(content)} chars)")
        try:
            fields = await self._persister(config.id, content)
        except Exception as e:
            self._log.error(
                f"Failed to persist config {config.id}: {get_short_error_info(e)}"
            )
            return
        # a save issued while the request was in flight wins over the echo
        config.merge(fields or {}, keep_content=config.content != content)
        self._log.info(f"Config {config.id} saved")

    async def flush(self) -> None:
        """Wait for persists that have already started."""
        while self._persisting:
            await asyncio.gather(*self._persisting, return_exceptions=True)

    def dispose(self) -> None:
        """Stop autosaving. Saves still waiting out the debounce are dropped."""
        if self._autosave is not None:
            self._autosave.dispose()
            self._autosave = None

import asyncio
import dataclasses
import enum
import logging
import os
import pathlib
import typing

from . import config, diff, model
from .controllers import Controller
from .resolver import ServiceResolver
from .template import Template


class ConfigPathError(Exception):
    """
    Raised when the configuration file cannot be written at the configured path.
    """


class PersistError(Exception):
    """
    Raised when writing the rendered configuration fails.
    """


@enum.unique
class CycleState(enum.Enum):
    """
    Represents the step that a reconciliation cycle is performing.
    """
    IDLE = "IDLE"
    RESOLVING = "RESOLVING"
    RENDERING = "RENDERING"
    COMPARING = "COMPARING"
    NOOP = "NOOP"
    PERSISTING = "PERSISTING"
    RELOADING = "RELOADING"


@dataclasses.dataclass(frozen = True)
class CycleResult:
    """
    The outcome of a single reconciliation cycle.
    """
    #: Indicates whether the configuration file was rewritten
    changed: bool
    #: Indicates whether the managed service was reloaded
    reloaded: bool


def _read_if_exists(path: pathlib.Path) -> str:
    try:
        return path.read_text(encoding = "utf-8")
    except FileNotFoundError:
        return ""


class Reconciler:
    """
    Brings the configuration file of the managed service in line with the template and
    the currently discoverable endpoints.
    """
    def __init__(
        self,
        template: Template,
        cache: model.DiscoveryCache,
        resolver: ServiceResolver,
        controller: Controller,
        config_path: typing.Union[str, pathlib.Path]
    ):
        self.template = template
        self.cache = cache
        self.resolver = resolver
        self.controller = controller
        self.config_path = pathlib.Path(config_path)
        self.state = CycleState.IDLE
        self.service_state = model.ServiceState.NOT_STARTED
        #: Counters that are reported as metrics
        self.cycles = 0
        self.writes = 0
        self.reloads = 0
        self._logger = logging.getLogger(__name__)

    def check_config_path(self):
        """
        Checks that the configuration file can be written.
        """
        directory = self.config_path.parent
        if not directory.is_dir():
            raise ConfigPathError(f"configuration directory {directory} does not exist")
        if self.config_path.exists():
            if not os.access(self.config_path, os.W_OK):
                raise ConfigPathError(f"configuration file {self.config_path} is not writable")
        elif not os.access(directory, os.W_OK):
            raise ConfigPathError(f"configuration directory {directory} is not writable")

    async def _persist(self, content: str):
        self._logger.info("Writing configuration file %s", self.config_path)
        try:
            await asyncio.to_thread(self.config_path.write_text, content, encoding = "utf-8")
        except OSError as exc:
            raise PersistError(f"failed to write {self.config_path}: {exc}") from exc
        self.writes += 1
        self._logger.info("Configuration file updated %s", self.config_path)

    async def _reload(self) -> bool:
        if self.service_state != model.ServiceState.RUNNING:
            self._logger.info("Configuration changed but the managed service is not running yet")
            return False
        self._logger.info("Configuration changed, reloading the managed service")
        reloaded, command = await self.controller.reload()
        self._logger.info(
            "Triggered configuration reload [reloaded: %s, command: %s]",
            reloaded,
            " ".join(command)
        )
        if reloaded:
            self.reloads += 1
        return reloaded

    async def reconcile(self) -> CycleResult:
        """
        Runs one reconciliation cycle.

        The configuration file is only written, and the managed service only reloaded,
        when the rendered configuration differs materially from the file on disk.
        """
        self.cycles += 1
        try:
            self.state = CycleState.RESOLVING
            await self.resolver.resolve_all(self.cache)

            self.state = CycleState.RENDERING
            content = self.template.render(self.cache)

            self.state = CycleState.COMPARING
            previous = await asyncio.to_thread(_read_if_exists, self.config_path)
            if not diff.has_changed(previous, content):
                self.state = CycleState.NOOP
                self._logger.debug("No configuration changes detected")
                return CycleResult(changed = False, reloaded = False)
            self._logger.info(
                "Configuration changes detected, diff follows\n%s",
                diff.unified_diff(previous, content, str(self.config_path))
            )

            self.state = CycleState.PERSISTING
            await self._persist(content)

            self.state = CycleState.RELOADING
            reloaded = await self._reload()
            return CycleResult(changed = True, reloaded = reloaded)
        finally:
            self.state = CycleState.IDLE

    async def verify(self):
        """
        Verifies the configuration file using the controller.
        """
        self._logger.info("Verifying configuration")
        if not self.config_path.exists():
            raise ConfigPathError(f"configuration file {self.config_path} can not be found")
        if await self.controller.verify():
            self._logger.info("Configuration verified successfully")
        else:
            self._logger.warning("Configuration has warnings")

    async def start_service(self):
        """
        Starts the managed service.
        """
        await self.controller.start()
        self.service_state = model.ServiceState.RUNNING

    async def startup(self):
        """
        Produces the initial configuration, verifies it and starts the managed service.
        """
        self.check_config_path()
        await self.reconcile()
        await self.verify()
        await self.start_service()
        self._logger.info("Managed service and configuration successfully started")

    @classmethod
    def from_config(
        cls,
        config_obj: config.ConfiguratorConfig,
        template: Template,
        controller: Controller
    ) -> "Reconciler":
        """
        Initialises a reconciler for the given template from a config object.
        """
        return cls(
            template,
            model.DiscoveryCache.from_template(template),
            ServiceResolver.from_config(config_obj),
            controller,
            config_obj.config_path
        )

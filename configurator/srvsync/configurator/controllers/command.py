import logging
import typing

from .. import config  # noqa: TID252

from . import base


class Controller(base.Controller):
    """
    Controls a managed service using operator-supplied commands.

    An empty command is treated as a successful no-op.
    """

    def __init__(self, config_path: str, config: config.CommandConfig):
        self.config_path = config_path
        self.config = config
        super().__init__(logging.getLogger(__name__), config.command_timeout)

    def _format(self, command: typing.List[str]) -> typing.List[str]:
        # Only the placeholder is substituted so that other braces reach the command intact
        return [arg.replace("{config_path}", self.config_path) for arg in command]

    async def _run(self, name: str, command: typing.List[str]) -> base.CommandResult:
        argv = self._format(command)
        if not argv:
            self.logger.debug("No %s command configured", name)
            return base.CommandResult([], 0, "")
        result = await self.run_command(*argv)
        if result.returncode != 0:
            raise base.ControllerError(
                f"{name} command exited with code {result.returncode}: {result.output.strip()}"
            )
        return result

    async def verify(self) -> bool:
        await self._run("verify", self.config.verify_command)
        return True

    async def start(self):
        await self._run("start", self.config.start_command)

    async def reload(self) -> typing.Tuple[bool, typing.List[str]]:
        result = await self._run("reload", self.config.reload_command)
        return bool(result.command), result.command

    @classmethod
    def from_config(cls, config_obj: config.ConfiguratorConfig) -> "Controller":
        return cls(config_obj.config_path, config_obj.command)

import asyncio
import logging
import typing

from .. import config  # noqa: TID252


class ControllerError(Exception):
    """
    Raised when the managed service reports an error or cannot be controlled.
    """


class CommandResult(typing.NamedTuple):
    """
    The outcome of running a command.
    """
    #: The argv of the command
    command: typing.List[str]
    #: The exit code of the command
    returncode: int
    #: The combined stdout and stderr of the command
    output: str


class Controller:
    """
    Controls the managed service whose configuration is being maintained.
    """

    def __init__(
        self,
        logger: logging.Logger,
        command_timeout: float,
        stats_interval: typing.Optional[float] = None,
    ):
        self.logger = logger
        self.command_timeout = command_timeout
        # Statistics are only logged for controllers that set an interval
        self.stats_interval = stats_interval

    async def run_command(self, *command: str) -> CommandResult:
        """
        Runs the given command and returns the result.

        Raises ``ControllerError`` if the command cannot be executed or does not complete
        within the command timeout.
        """
        self.logger.debug("Running command: %s", " ".join(command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ControllerError(f"unable to execute {command[0]}: {exc}") from exc
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), self.command_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ControllerError(
                f"command did not complete within {self.command_timeout}s: "
                + " ".join(command)
            )
        return CommandResult(list(command), proc.returncode, stdout.decode(errors="replace"))

    async def verify(self) -> bool:
        """
        Checks the configuration file of the managed service.

        Returns True if the configuration is valid and False if it is valid with warnings.
        Raises ``ControllerError`` if the configuration is invalid.
        """
        raise NotImplementedError

    async def start(self):
        """
        Starts the managed service.
        """
        raise NotImplementedError

    async def reload(self) -> typing.Tuple[bool, typing.List[str]]:
        """
        Reloads the configuration of the managed service.

        Returns a (reloaded, command) tuple.
        """
        raise NotImplementedError

    async def stats(self) -> typing.List[typing.Dict[str, str]]:
        """
        Returns statistics for the managed service.
        """
        return []

    async def startup(self):
        """
        Perform any startup tasks that are required.
        """

    async def shutdown(self):
        """
        Perform any shutdown tasks that are required.
        """

    async def __aenter__(self):
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.shutdown()

    @classmethod
    def from_config(cls, config_obj: config.ConfiguratorConfig) -> "Controller":
        """
        Initialises an instance of the controller from a config object.
        """
        raise NotImplementedError

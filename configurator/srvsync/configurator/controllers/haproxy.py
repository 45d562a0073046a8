import asyncio
import csv
import logging
import pathlib
import typing

from .. import config  # noqa: TID252

from . import base


def parse_stats(content: str) -> typing.List[typing.Dict[str, str]]:
    """
    Parses the CSV output of the HAProxy "show stat" command into a list of dicts.
    """
    lines = [line for line in content.splitlines() if line.strip()]
    if not lines:
        return []
    # The header line is prefixed with "# " and each line has a trailing comma
    header = lines[0].lstrip("# ").rstrip(",").split(",")
    return [
        {k: v for k, v in row.items() if k}
        for row in csv.DictReader(lines[1:], fieldnames=header)
    ]


class Controller(base.Controller):
    """
    Controls an HAProxy daemon using the HAProxy executable and admin socket.
    """

    def __init__(self, config_path: str, config: config.HAProxyConfig):
        self.config_path = config_path
        self.config = config
        super().__init__(
            logging.getLogger(__name__), config.command_timeout, config.stats_interval
        )

    def _command(self, *args: str) -> typing.List[str]:
        return [self.config.executable, *args]

    def _daemon_command(self) -> typing.List[str]:
        return self._command("-D", "-f", self.config_path, "-p", self.config.pid_path)

    def _running_pids(self) -> typing.List[str]:
        pid_path = pathlib.Path(self.config.pid_path)
        if not pid_path.exists():
            return []
        return pid_path.read_text().split()

    async def verify(self) -> bool:
        result = await self.run_command(*self._command("-c", "-f", self.config_path))
        if result.returncode != 0:
            raise base.ControllerError(
                f"configuration check failed for {self.config_path}: {result.output.strip()}"
            )
        return "[WARNING]" not in result.output

    async def start(self):
        self.logger.info("Starting the HAProxy daemon process")
        result = await self.run_command(*self._daemon_command())
        if result.returncode != 0:
            raise base.ControllerError(
                f"failed to start HAProxy: {result.output.strip()}"
            )

    async def reload(self) -> typing.Tuple[bool, typing.List[str]]:
        command = self._daemon_command()
        pids = self._running_pids()
        if pids:
            # Ask the new process to take over from the old ones once it is ready
            command.extend(["-sf", *pids])
        result = await self.run_command(*command)
        if result.returncode != 0:
            raise base.ControllerError(
                f"HAProxy reload failed: {result.output.strip()} (command: {' '.join(command)})"
            )
        return True, command

    async def stats(self) -> typing.List[typing.Dict[str, str]]:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(self.config.socket_path),
                self.command_timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise base.ControllerError(
                f"unable to connect to HAProxy socket at {self.config.socket_path}"
            ) from exc
        try:
            writer.write(b"show stat -1 -1 -1\n")
            await writer.drain()
            content = await asyncio.wait_for(reader.read(), self.command_timeout)
            writer.close()
            await writer.wait_closed()
        except (OSError, asyncio.TimeoutError) as exc:
            raise base.ControllerError("failed to read stats from HAProxy socket") from exc
        finally:
            # Closing again is harmless and covers the failure paths
            writer.close()
        return parse_stats(content.decode(errors="replace"))

    @classmethod
    def from_config(cls, config_obj: config.ConfiguratorConfig) -> "Controller":
        return cls(config_obj.config_path, config_obj.haproxy)

import enum
import typing as t

from pydantic import Field, StringConstraints

from configomatic import Configuration, Section, LoggingConfiguration


#: Type for a non-empty string
NonEmptyString = t.Annotated[str, StringConstraints(min_length = 1)]


#: Type for a strictly positive number of seconds
PositiveSeconds = t.Annotated[float, Field(gt = 0)]


class OverlapPolicy(str, enum.Enum):
    """
    Enum of the things the scheduler can do with a tick that arrives while a cycle is active.
    """
    #: Drop the tick
    SKIP = "skip"
    #: Run one more cycle as soon as the active cycle finishes
    QUEUE = "queue"
    #: Start another cycle regardless
    ALLOW = "allow"


class FailurePolicy(str, enum.Enum):
    """
    Enum of the options for what happens to a cached key when its resolution fails.
    """
    #: Mark the key as unresolved, which drops it from the rendered configuration
    CLEAR = "clear"
    #: Keep serving the last endpoints that were successfully resolved
    RETAIN = "retain"


class DNSConfig(Section):
    """
    Model for the DNS configuration section.
    """
    #: The nameservers to query
    #: If not given, the nameservers from /etc/resolv.conf are used
    nameservers: t.List[NonEmptyString] = Field(default_factory = list)
    #: The port to send DNS queries to
    port: t.Annotated[int, Field(gt = 0)] = 53
    #: The maximum time to spend on a single lookup, including retries
    lookup_timeout: PositiveSeconds = 5
    #: The record types to try, in order, when resolving an SRV target to an address
    address_record_types: t.List[t.Literal["A", "AAAA"]] = Field(
        default_factory = lambda: ["A", "AAAA"],
        min_length = 1
    )


class HAProxyConfig(Section):
    """
    Model for the HAProxy controller configuration section.
    """
    #: The HAProxy executable
    #: By default, we assume HAProxy is on the PATH
    executable: NonEmptyString = "haproxy"
    #: The path to the HAProxy admin socket
    socket_path: NonEmptyString = "/tmp/haproxy.sock"
    #: The path to the pid file maintained by HAProxy
    pid_path: NonEmptyString = "/var/run/haproxy.pid"
    #: The maximum time to wait for an HAProxy command to complete
    command_timeout: PositiveSeconds = 30
    #: The interval at which HAProxy statistics are logged
    stats_interval: PositiveSeconds = 10


class CommandConfig(Section):
    """
    Model for the command controller configuration section.

    Each command is an argv list in which ``{config_path}`` is replaced with the path
    of the managed configuration file.
    """
    #: The command used to check the configuration file
    verify_command: t.List[NonEmptyString] = Field(default_factory = list)
    #: The command used to start the managed service
    start_command: t.List[NonEmptyString] = Field(default_factory = list)
    #: The command used to reload the managed service
    reload_command: t.List[NonEmptyString] = Field(default_factory = list)
    #: The maximum time to wait for a command to complete
    command_timeout: PositiveSeconds = 30


class MetricsConfig(Section):
    """
    Model for the metrics configuration section.
    """
    #: Indicates whether the metrics endpoint should be served
    enabled: bool = True
    #: The address to bind the metrics server to
    address: NonEmptyString = "0.0.0.0"
    #: The port for the metrics server
    port: t.Annotated[int, Field(gt = 0)] = 8080


class ConfiguratorConfig(
    Configuration,
    default_path = "/etc/srvsync/configurator.yaml",
    path_env_var = "SRVSYNC_CONFIGURATOR_CONFIG",
    env_prefix = "SRVSYNC_CONFIGURATOR"
):
    """
    Configuration model for the srvsync configurator.
    """
    #: The logging configuration
    logging: LoggingConfiguration = Field(default_factory = LoggingConfiguration)
    #: Indicates whether debug logging should be enabled
    verbose: bool = False

    #: The Jinja2 template that the configuration is rendered from
    template_path: NonEmptyString = "/etc/srvsync/haproxy.cfg.j2"
    #: The configuration file of the managed service
    config_path: NonEmptyString = "/etc/haproxy.cfg"
    #: The interval between refresh cycles in milliseconds
    refresh_interval: t.Annotated[int, Field(gt = 0)] = 1000
    #: What to do with a refresh tick when the previous cycle is still running
    overlap_policy: OverlapPolicy = OverlapPolicy.SKIP
    #: What to do with the cached endpoints for a key whose resolution fails
    failure_policy: FailurePolicy = FailurePolicy.CLEAR

    #: The name of the controller type used to manage the service
    controller_type: NonEmptyString = "haproxy"

    #: The DNS configuration
    dns: DNSConfig = Field(default_factory = DNSConfig)
    #: The HAProxy controller configuration
    haproxy: HAProxyConfig = Field(default_factory = HAProxyConfig)
    #: The command controller configuration
    command: CommandConfig = Field(default_factory = CommandConfig)
    #: The metrics configuration
    metrics: MetricsConfig = Field(default_factory = MetricsConfig)

import asyncio
import functools
import typing

from aiohttp import web

if typing.TYPE_CHECKING:
    from .reconciler import Reconciler
    from .scheduler import Scheduler


class Metric:
    """
    Base class for metrics.
    """
    # The prefix for the metric
    prefix = "srvsync"
    # The suffix for the metric
    suffix = None
    # The type of the metric - gauge or counter
    type = "gauge"
    # The description of the metric
    description = None

    def __init__(self):
        self._samples = []

    def add_sample(self, value, **labels):
        self._samples.append((labels, value))

    @property
    def name(self):
        return f"{self.prefix}_{self.suffix}"

    @property
    def sample_name(self):
        # OpenMetrics requires counter samples to carry the _total suffix
        return f"{self.name}_total" if self.type == "counter" else self.name

    def samples(self):
        """
        Returns the samples for the metric, i.e. a list of (labels, value) tuples.
        """
        return list(self._samples)


class DiscoveryKeyResolved(Metric):
    suffix = "discovery_key_resolved"
    description = "Indicates whether the last resolution of a discovery key succeeded"


class DiscoveryKeyEndpoints(Metric):
    suffix = "discovery_key_endpoints"
    description = "The number of endpoints currently known for a discovery key"


class DiscoveryKeyFailures(Metric):
    suffix = "discovery_key_failures"
    type = "counter"
    description = "The number of failed resolutions for a discovery key"


class ReconcileCycles(Metric):
    suffix = "reconcile_cycles"
    type = "counter"
    description = "The number of reconciliation cycles that have been started"


class ConfigWrites(Metric):
    suffix = "config_writes"
    type = "counter"
    description = "The number of times the configuration file has been written"


class ServiceReloads(Metric):
    suffix = "service_reloads"
    type = "counter"
    description = "The number of times the managed service has been reloaded"


class SkippedTicks(Metric):
    suffix = "skipped_ticks"
    type = "counter"
    description = "The number of refresh ticks dropped because a cycle was still running"


def collect(reconciler: "Reconciler", scheduler: "Scheduler") -> typing.List[Metric]:
    """
    Produces the metrics for the given reconciler and scheduler.
    """
    resolved = DiscoveryKeyResolved()
    endpoints = DiscoveryKeyEndpoints()
    failures = DiscoveryKeyFailures()
    for key, value in reconciler.cache.items():
        resolved.add_sample(0 if value is None else 1, key = key)
        endpoints.add_sample(len(value or ()), key = key)
        failures.add_sample(reconciler.resolver.failures[key], key = key)
    cycles = ReconcileCycles()
    cycles.add_sample(reconciler.cycles)
    writes = ConfigWrites()
    writes.add_sample(reconciler.writes)
    reloads = ServiceReloads()
    reloads.add_sample(reconciler.reloads)
    skipped = SkippedTicks()
    skipped.add_sample(scheduler.skipped)
    return [resolved, endpoints, failures, cycles, writes, reloads, skipped]


def escape(content):
    """
    Escape the given content for use in metric output.
    """
    return str(content).replace("\\", r"\\").replace("\n", r"\n").replace('"', r"\"")


def render_openmetrics(*metrics: Metric) -> typing.Tuple[str, bytes]:
    """
    Renders the metrics using OpenMetrics text format.
    """
    output = []
    for metric in metrics:
        if metric.description:
            output.append(f"# HELP {metric.name} {escape(metric.description)}\n")
        output.append(f"# TYPE {metric.name} {metric.type}\n")

        for labels, value in metric.samples():
            if labels:
                labelstr = "{{{0}}}".format(
                    ",".join([f'{k}="{escape(v)}"' for k, v in sorted(labels.items())])
                )
            else:
                labelstr = ""
            output.append(f"{metric.sample_name}{labelstr} {value}\n")
    output.append("# EOF\n")

    return (
        "application/openmetrics-text; version=1.0.0; charset=utf-8",
        "".join(output).encode("utf-8"),
    )


async def metrics_handler(reconciler: "Reconciler", scheduler: "Scheduler", request):
    """
    Produce metrics for the reconciler and scheduler.
    """
    content_type, content = render_openmetrics(*collect(reconciler, scheduler))
    return web.Response(headers = {"Content-Type": content_type}, body = content)


async def metrics_server(
    reconciler: "Reconciler",
    scheduler: "Scheduler",
    address: str = "0.0.0.0",
    port: int = 8080
):
    """
    Launch a lightweight HTTP server to serve the metrics endpoint.
    """
    app = web.Application()
    app.add_routes([
        web.get("/metrics", functools.partial(metrics_handler, reconciler, scheduler))
    ])

    runner = web.AppRunner(app, handle_signals = False, shutdown_timeout = 1.0)
    await runner.setup()

    site = web.TCPSite(runner, address, port)
    await site.start()

    # Sleep until we need to clean up
    try:
        await asyncio.Event().wait()
    finally:
        await asyncio.shield(runner.cleanup())

import asyncio
import contextlib
import json
import logging

from . import config, util
from .controllers import Controller, ControllerError, load as load_controller
from .metrics import metrics_server
from .model import DiscoveryCache
from .reconciler import Reconciler
from .resolver import ServiceResolver
from .scheduler import Scheduler
from .template import Template


logger = logging.getLogger(__name__)


def load_template(config_obj: config.ConfiguratorConfig) -> Template:
    """
    Loads the configuration template, exposing the configuration to it as ``settings``.
    """
    return Template.from_path(config_obj.template_path, settings = config_obj)


async def log_stats(controller: Controller, interval: float):
    """
    Logs statistics from the managed service at the given interval.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            stats = await controller.stats()
        except ControllerError as exc:
            logger.warning("Unable to fetch service stats - %s", exc)
        else:
            logger.info("Service stats: %s", json.dumps(stats))


async def render_once(config_obj: config.ConfiguratorConfig) -> str:
    """
    Resolves the keys referenced by the template once and returns the rendered output.

    Nothing is written and the managed service is not touched.
    """
    template = load_template(config_obj)
    cache = DiscoveryCache.from_template(template)
    await ServiceResolver.from_config(config_obj).resolve_all(cache)
    return template.render(cache)


async def run(config_obj: config.ConfiguratorConfig):
    """
    Keeps the configuration of the managed service in sync with the discovered endpoints.
    """
    # Loading the template also validates its syntax before anything else happens
    template = load_template(config_obj)
    async with contextlib.AsyncExitStack() as stack:
        controller = await stack.enter_async_context(load_controller(config_obj))
        reconciler = Reconciler.from_config(config_obj, template, controller)
        logger.info(
            "Found %d discovery keys in %s",
            len(reconciler.cache),
            config_obj.template_path
        )
        await reconciler.startup()
        scheduler = Scheduler.from_config(config_obj, reconciler)
        tasks = [scheduler.run()]
        if config_obj.metrics.enabled:
            tasks.append(
                metrics_server(
                    reconciler,
                    scheduler,
                    config_obj.metrics.address,
                    config_obj.metrics.port
                )
            )
        if controller.stats_interval:
            tasks.append(log_stats(controller, controller.stats_interval))
        # All of the tasks should run forever, so the first one to exit ends the process
        await util.wait_first(*tasks)

import importlib.metadata

from .. import config  # noqa: TID252
from .base import Controller, ControllerError

EP_GROUP = "srvsync.configurator.controllers"


def load(config_obj: config.ConfiguratorConfig) -> Controller:
    """
    Loads the controller from the given configuration.
    """
    (ep,) = importlib.metadata.entry_points(
        group=EP_GROUP, name=config_obj.controller_type
    )
    controller_type: type[Controller] = ep.load()
    return controller_type.from_config(config_obj)

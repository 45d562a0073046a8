import logging
import pathlib
import typing

import jinja2

from .model import DiscoveryCache


logger = logging.getLogger(__name__)


class Template:
    """
    A compiled configuration template that references discovery keys using ``lookup``.

    Templates consume discovered endpoints using a call block, e.g.::

        {% call(endpoints) lookup("_http._tcp.web.service.consul") %}
        {%- for endpoint in endpoints %}
            server {{ endpoint.name }} {{ endpoint.ip }}:{{ endpoint.port }} check
        {%- endfor %}
        {% endcall %}

    The template is rendered in two distinct ways: ``scan`` enumerates the keys that the
    template needs without ever evaluating the blocks, and ``render`` produces the
    configuration from the endpoints currently held in a cache.
    """
    def __init__(self, source: str, name: str = "<template>", **globals):
        self.name = name
        self.env = jinja2.Environment(
            autoescape = False,
            keep_trailing_newline = True,
            undefined = jinja2.StrictUndefined
        )
        self.env.globals.update(globals)
        # Syntax errors surface here, before any lookups happen
        self._template = self.env.from_string(source)

    @classmethod
    def from_path(cls, path: typing.Union[str, pathlib.Path], **globals) -> "Template":
        """
        Loads and compiles the template at the given path.
        """
        path = pathlib.Path(path)
        return cls(path.read_text(encoding = "utf-8"), str(path), **globals)

    def scan(self) -> typing.List[str]:
        """
        Renders the template without data and returns the discovery keys it references.

        The keys are returned in order of first appearance.
        """
        found = {}

        def lookup(key, caller = None):
            logger.debug("Found lookup for key %s", key)
            found.setdefault(key, None)
            return ""

        self._template.render(lookup = lookup)
        logger.debug("Scan of %s found %d keys", self.name, len(found))
        return list(found)

    def render(self, cache: DiscoveryCache) -> str:
        """
        Renders the template using the endpoints currently in the given cache.

        A block whose key is unresolved or has no endpoints produces no output.
        """
        def lookup(key, caller = None):
            endpoints = cache.get(key)
            if not endpoints:
                logger.debug("No endpoints for %s, block will be ignored", key)
                return ""
            if caller is None:
                return ""
            return caller(list(endpoints))

        return self._template.render(lookup = lookup)

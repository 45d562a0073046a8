import dataclasses
import enum
import locale
import typing

if typing.TYPE_CHECKING:
    from .template import Template


@dataclasses.dataclass(frozen = True)
class Endpoint:
    """
    Represents a single target discovered for a service.
    """
    #: The target name from the SRV record
    name: str
    #: The port for the endpoint
    port: int
    #: The SRV priority of the endpoint
    priority: int = 0
    #: The SRV weight of the endpoint
    weight: int = 0
    #: The address for the endpoint, populated by address resolution
    ip: typing.Optional[str] = None


def sort_endpoints(endpoints: typing.Iterable[Endpoint]) -> typing.List[Endpoint]:
    """
    Returns the endpoints sorted by name using the collation rules of the current locale.

    Two answers that only differ in the order of their records sort to the same list.
    """
    return sorted(endpoints, key = lambda e: (locale.strxfrm(e.name), e.name, e.port))


@enum.unique
class ServiceState(enum.Enum):
    """
    Represents the possible states of the managed service.
    """
    #: The managed service has not been started by us yet
    NOT_STARTED = "NOT_STARTED"
    #: The managed service is running
    RUNNING = "RUNNING"


#: The value held by a key whose endpoints are not known
UNRESOLVED = None


class DiscoveryCache:
    """
    Ordered mapping of discovery key to the endpoints last resolved for it.

    A key maps to either a tuple of endpoints (possibly empty) or ``UNRESOLVED``.
    Keys can only be registered until the cache is frozen, after which only the values
    change.
    """
    def __init__(self, keys: typing.Iterable[str] = ()):
        self._entries: typing.Dict[str, typing.Optional[typing.Tuple[Endpoint, ...]]] = {}
        self._frozen = False
        for key in keys:
            self.register(key)

    @classmethod
    def from_template(cls, template: "Template") -> "DiscoveryCache":
        """
        Builds a frozen cache containing the keys referenced by the given template.
        """
        cache = cls(template.scan())
        cache.freeze()
        return cache

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self):
        """
        Fix the key set of the cache.
        """
        self._frozen = True

    def register(self, key: str):
        """
        Register the given key as unresolved if it is not already known.
        """
        if key in self._entries:
            return
        if self._frozen:
            raise KeyError(f"cannot register {key!r} after the key set is fixed")
        self._entries[key] = UNRESOLVED

    def get(self, key: str) -> typing.Optional[typing.Tuple[Endpoint, ...]]:
        """
        Returns the endpoints for the key, or ``UNRESOLVED``.
        """
        return self._entries.get(key, UNRESOLVED)

    def set(self, key: str, endpoints: typing.Iterable[Endpoint]):
        """
        Store the given endpoints for a known key, sorted by name.
        """
        if key not in self._entries:
            raise KeyError(key)
        self._entries[key] = tuple(sort_endpoints(endpoints))

    def mark_unresolved(self, key: str):
        """
        Reset a known key to ``UNRESOLVED``.
        """
        if key not in self._entries:
            raise KeyError(key)
        self._entries[key] = UNRESOLVED

    def is_resolved(self, key: str) -> bool:
        return self.get(key) is not UNRESOLVED

    def keys(self) -> typing.List[str]:
        return list(self._entries)

    def items(self):
        return list(self._entries.items())

    def __contains__(self, key):
        return key in self._entries

    def __iter__(self):
        return iter(list(self._entries))

    def __len__(self):
        return len(self._entries)

    def __repr__(self):
        return f"DiscoveryCache({self._entries!r})"

import asyncio
import collections
import ipaddress
import logging
import typing

import dns.asyncresolver
import dns.exception
import dns.resolver

from . import config, model, util


class LookupFailed(Exception):
    """
    Raised when a discovery key or one of its targets cannot be resolved.
    """


def is_ip_address(name: str) -> bool:
    """
    Returns True if the given name is a literal IPv4 or IPv6 address.
    """
    try:
        ipaddress.ip_address(name)
    except ValueError:
        return False
    else:
        return True


class ServiceResolver:
    """
    Resolves discovery keys into endpoints using SRV records followed by address records.
    """
    def __init__(
        self,
        resolver,
        lookup_timeout: float = 5,
        address_record_types: typing.Sequence[str] = ("A", "AAAA"),
        failure_policy: config.FailurePolicy = config.FailurePolicy.CLEAR
    ):
        self.resolver = resolver
        self.lookup_timeout = lookup_timeout
        self.address_record_types = tuple(address_record_types)
        self.failure_policy = failure_policy
        #: The number of failed resolutions for each key
        self.failures: typing.Counter[str] = collections.Counter()
        self._logger = logging.getLogger(__name__)

    async def _query(self, name: str, rdtype: str):
        return await self.resolver.resolve(name, rdtype, lifetime = self.lookup_timeout)

    async def resolve_address(self, name: str) -> str:
        """
        Returns the first address for the given name.

        Literal addresses are returned as-is without a lookup.
        """
        if is_ip_address(name):
            return name
        for rdtype in self.address_record_types:
            try:
                answer = await self._query(name, rdtype)
            except dns.resolver.NoAnswer:
                continue
            except dns.exception.DNSException as exc:
                self._logger.debug("Address lookup failed for %s - %s", name, exc)
                raise LookupFailed(f"address lookup failed for {name}: {exc}") from exc
            for rdata in answer:
                self._logger.debug("Address lookup succeeded for %s (%s)", name, rdata.address)
                return rdata.address
        raise LookupFailed(f"no address records for {name}")

    async def resolve_service(self, key: str) -> typing.List[model.Endpoint]:
        """
        Resolves the SRV records for the key and the address of each target.

        If the address of any target cannot be resolved, the key as a whole fails.
        """
        self._logger.debug("Sending SRV request for %s", key)
        try:
            answer = await self._query(key, "SRV")
        except dns.resolver.NoAnswer:
            self._logger.debug("SRV lookup for %s returned no records", key)
            return []
        except dns.exception.DNSException as exc:
            raise LookupFailed(f"SRV lookup failed for {key}: {exc}") from exc
        records = model.sort_endpoints(
            model.Endpoint(
                name = rdata.target.to_text(omit_final_dot = True),
                port = rdata.port,
                priority = rdata.priority,
                weight = rdata.weight
            )
            for rdata in answer
        )
        tasks = [asyncio.create_task(self.resolve_address(r.name)) for r in records]
        try:
            addresses = await asyncio.gather(*tasks)
        finally:
            # Once one target has failed the key has failed, so abandon the other lookups
            for task in tasks:
                if not task.done():
                    await util.task_cancel_and_wait(task)
        return [
            model.Endpoint(
                name = record.name,
                port = record.port,
                priority = record.priority,
                weight = record.weight,
                ip = address
            )
            for record, address in zip(records, addresses)
        ]

    async def resolve_all(self, cache: model.DiscoveryCache) -> model.DiscoveryCache:
        """
        Refreshes every key in the cache concurrently.

        The outcome of each key is recorded independently, so one failing key never
        prevents the others from being updated.
        """
        keys = cache.keys()
        self._logger.debug("Starting DNS lookups for %d keys", len(keys))
        results = await asyncio.gather(
            *[self.resolve_service(key) for key in keys],
            return_exceptions = True
        )
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                self.failures[key] += 1
                if self.failure_policy == config.FailurePolicy.RETAIN:
                    self._logger.warning(
                        "Failed to resolve %s, keeping last known endpoints - %s",
                        key,
                        result
                    )
                else:
                    self._logger.warning("Failed to resolve %s - %s", key, result)
                    cache.mark_unresolved(key)
            elif isinstance(result, BaseException):
                # Cancellation of a lookup must not be mistaken for a resolution failure
                raise result
            else:
                self._logger.debug("Resolved %s to %d endpoints", key, len(result))
                cache.set(key, result)
        self._logger.debug("DNS lookups completed")
        return cache

    @classmethod
    def from_config(cls, config_obj: config.ConfiguratorConfig) -> "ServiceResolver":
        """
        Initialises a resolver from a config object.
        """
        resolver = dns.asyncresolver.Resolver(configure = not config_obj.dns.nameservers)
        if config_obj.dns.nameservers:
            resolver.nameservers = list(config_obj.dns.nameservers)
        resolver.port = config_obj.dns.port
        return cls(
            resolver,
            config_obj.dns.lookup_timeout,
            config_obj.dns.address_record_types,
            config_obj.failure_policy
        )

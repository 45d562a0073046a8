import asyncio

import pytest

from srvsync.configurator.config import FailurePolicy
from srvsync.configurator.model import DiscoveryCache, Endpoint, UNRESOLVED
from srvsync.configurator.resolver import LookupFailed, ServiceResolver, is_ip_address
from srvsync.configurator.template import Template

from fakes import CACHE_TEMPLATE, FakeDNSResolver


@pytest.mark.parametrize(
    "name,expected",
    [
        ("10.0.0.1", True),
        ("fd00::1", True),
        ("::1", True),
        ("web-1.service.consul", False),
        ("10.0.0", False),
    ],
)
def test_is_ip_address(name, expected):
    assert is_ip_address(name) is expected


@pytest.mark.asyncio
async def test_resolves_and_sorts_endpoints(fake_dns):
    cache = DiscoveryCache(["cache.svc"])
    await ServiceResolver(fake_dns).resolve_all(cache)
    assert cache.get("cache.svc") == (
        Endpoint("a", 80, 0, 0, "10.0.0.1"),
        Endpoint("b", 80, 0, 0, "10.0.0.2"),
    )


@pytest.mark.asyncio
async def test_literal_addresses_are_not_looked_up():
    fake_dns = FakeDNSResolver(
        srv = {"db.svc": [("10.0.0.9", 5432, 1, 10), ("fd00::9", 5432, 1, 10)]}
    )
    cache = DiscoveryCache(["db.svc"])
    await ServiceResolver(fake_dns).resolve_all(cache)
    assert [(e.name, e.ip) for e in cache.get("db.svc")] == [
        ("10.0.0.9", "10.0.0.9"),
        ("fd00::9", "fd00::9"),
    ]
    assert fake_dns.names_queried("A") == []
    assert fake_dns.names_queried("AAAA") == []


@pytest.mark.asyncio
async def test_permuted_answers_render_identically(cache_template_source):
    template = Template(cache_template_source)
    forward = FakeDNSResolver(
        srv = {"cache.svc": [("a", 80, 0, 0), ("b", 80, 0, 0), ("c", 81, 0, 0)]},
        a = {"a": ["10.0.0.1"], "b": ["10.0.0.2"], "c": ["10.0.0.3"]}
    )
    backward = FakeDNSResolver(
        srv = {"cache.svc": [("c", 81, 0, 0), ("a", 80, 0, 0), ("b", 80, 0, 0)]},
        a = forward.a
    )
    first = DiscoveryCache.from_template(template)
    second = DiscoveryCache.from_template(template)
    await ServiceResolver(forward).resolve_all(first)
    await ServiceResolver(backward).resolve_all(second)
    assert first.get("cache.svc") == second.get("cache.svc")
    assert template.render(first) == template.render(second)


@pytest.mark.asyncio
async def test_failed_key_does_not_affect_others(dns_timeout):
    fake_dns = FakeDNSResolver(
        srv = {
            "good.svc": [("a", 80, 0, 0)],
            "slow.svc": dns_timeout,
        },
        a = {"a": ["10.0.0.1"]}
    )
    cache = DiscoveryCache(["good.svc", "missing.svc", "slow.svc"])
    resolver = ServiceResolver(fake_dns)
    await resolver.resolve_all(cache)
    assert cache.get("good.svc") == (Endpoint("a", 80, ip = "10.0.0.1"),)
    assert cache.get("missing.svc") is UNRESOLVED
    assert cache.get("slow.svc") is UNRESOLVED
    assert resolver.failures == {"missing.svc": 1, "slow.svc": 1}


@pytest.mark.asyncio
async def test_failed_target_fails_whole_key():
    fake_dns = FakeDNSResolver(
        srv = {"cache.svc": [("a", 80, 0, 0), ("gone", 80, 0, 0)]},
        a = {"a": ["10.0.0.1"]}
    )
    cache = DiscoveryCache(["cache.svc"])
    cache.set("cache.svc", [Endpoint("a", 80, ip = "10.0.0.1")])
    await ServiceResolver(fake_dns).resolve_all(cache)
    assert cache.get("cache.svc") is UNRESOLVED


class StalledDNSResolver(FakeDNSResolver):
    """
    Never answers address queries for the stalled names, recording when they are cancelled.
    """
    def __init__(self, stalled, **kwargs):
        super().__init__(**kwargs)
        self.stalled = stalled
        self.cancelled = []

    async def resolve(self, qname, rdtype, lifetime = None):
        if qname in self.stalled:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(qname)
                raise
        return await super().resolve(qname, rdtype, lifetime)


@pytest.mark.asyncio
async def test_failed_target_cancels_remaining_lookups():
    fake_dns = StalledDNSResolver(
        {"a"},
        srv = {"cache.svc": [("a", 80, 0, 0), ("gone", 80, 0, 0)]}
    )
    cache = DiscoveryCache(["cache.svc"])
    await asyncio.wait_for(ServiceResolver(fake_dns).resolve_all(cache), 1)
    assert cache.get("cache.svc") is UNRESOLVED
    assert fake_dns.cancelled == ["a"]


@pytest.mark.asyncio
async def test_resolve_service_raises_lookup_failed():
    with pytest.raises(LookupFailed):
        await ServiceResolver(FakeDNSResolver()).resolve_service("missing.svc")


@pytest.mark.asyncio
async def test_retain_policy_keeps_last_known_endpoints():
    fake_dns = FakeDNSResolver(
        srv = {"cache.svc": [("a", 80, 0, 0)]},
        a = {"a": ["10.0.0.1"]}
    )
    cache = DiscoveryCache(["cache.svc"])
    resolver = ServiceResolver(fake_dns, failure_policy = FailurePolicy.RETAIN)
    await resolver.resolve_all(cache)
    resolved = cache.get("cache.svc")
    del fake_dns.srv["cache.svc"]
    await resolver.resolve_all(cache)
    assert cache.get("cache.svc") == resolved
    assert resolver.failures["cache.svc"] == 1


@pytest.mark.asyncio
async def test_no_srv_records_is_an_empty_list():
    fake_dns = FakeDNSResolver(srv = {"empty.svc": []})
    cache = DiscoveryCache(["empty.svc"])
    await ServiceResolver(fake_dns).resolve_all(cache)
    assert cache.get("empty.svc") == ()
    assert cache.is_resolved("empty.svc")


@pytest.mark.asyncio
async def test_falls_back_to_aaaa_records():
    fake_dns = FakeDNSResolver(
        srv = {"v6.svc": [("web", 443, 0, 0)]},
        a = {"web": []},
        aaaa = {"web": ["fd00::10"]}
    )
    cache = DiscoveryCache(["v6.svc"])
    await ServiceResolver(fake_dns).resolve_all(cache)
    assert cache.get("v6.svc") == (Endpoint("web", 443, ip = "fd00::10"),)
    assert fake_dns.names_queried("AAAA") == ["web"]


@pytest.mark.asyncio
async def test_keys_are_resolved_concurrently():
    class SlowDNSResolver(FakeDNSResolver):
        in_flight = 0
        max_in_flight = 0

        async def resolve(self, qname, rdtype, lifetime = None):
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                await asyncio.sleep(0.01)
                return await super().resolve(qname, rdtype, lifetime)
            finally:
                self.in_flight -= 1

    fake_dns = SlowDNSResolver(srv = {"a.svc": [], "b.svc": [], "c.svc": []})
    await ServiceResolver(fake_dns).resolve_all(DiscoveryCache(["a.svc", "b.svc", "c.svc"]))
    assert fake_dns.max_in_flight == 3

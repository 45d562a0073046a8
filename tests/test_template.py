import jinja2
import pytest

from srvsync.configurator.model import DiscoveryCache, Endpoint
from srvsync.configurator.template import Template


TWO_KEYS = """\
{% call(endpoints) lookup("A") %}{% for e in endpoints %}a:{{ e.ip }} {% endfor %}{% endcall %}
{% call(endpoints) lookup("B") %}{% for e in endpoints %}b:{{ e.ip }} {% endfor %}{% endcall %}
"""


def test_scan_finds_each_key_once():
    template = Template(TWO_KEYS)
    assert template.scan() == ["A", "B"]


def test_scan_is_idempotent():
    template = Template(TWO_KEYS)
    first = template.scan()
    assert template.scan() == first
    cache = DiscoveryCache.from_template(template)
    assert cache.keys() == ["A", "B"]
    assert cache.frozen
    assert not cache.is_resolved("A")
    assert not cache.is_resolved("B")


def test_scan_deduplicates_repeated_keys():
    source = '{{ lookup("A") }}{{ lookup("A") }}{{ lookup("B") }}'
    assert Template(source).scan() == ["A", "B"]


def test_scan_does_not_evaluate_blocks():
    # The block refers to attributes that would fail without real endpoint data
    source = '{% call(endpoints) lookup("A") %}{{ endpoints[0].missing }}{% endcall %}'
    assert Template(source).scan() == ["A"]


def test_malformed_template_fails_on_load():
    with pytest.raises(jinja2.TemplateSyntaxError):
        Template('{% call(endpoints) lookup("A") %}never closed')


def test_from_path_reads_template(tmp_path):
    path = tmp_path / "haproxy.cfg.j2"
    path.write_text(TWO_KEYS)
    template = Template.from_path(path)
    assert template.name == str(path)
    assert template.scan() == ["A", "B"]


def test_render_uses_resolved_endpoints():
    template = Template(TWO_KEYS)
    cache = DiscoveryCache.from_template(template)
    cache.set("A", [Endpoint("x", 80, ip = "10.0.0.1"), Endpoint("y", 80, ip = "10.0.0.2")])
    cache.set("B", [Endpoint("z", 80, ip = "10.0.0.3")])
    assert template.render(cache) == "a:10.0.0.1 a:10.0.0.2 \nb:10.0.0.3 \n"


def test_render_omits_unresolved_and_empty_keys():
    template = Template(TWO_KEYS)
    cache = DiscoveryCache.from_template(template)
    cache.set("B", [])
    assert template.render(cache) == "\n\n"


def test_render_calls_block_once_per_lookup():
    source = (
        '{% call(endpoints) lookup("A") %}[{{ endpoints|length }}]{% endcall %}'
        '{% call(endpoints) lookup("A") %}({{ endpoints[0].port }}){% endcall %}'
    )
    template = Template(source)
    cache = DiscoveryCache.from_template(template)
    cache.set("A", [Endpoint("x", 8080, ip = "10.0.0.1")])
    assert template.render(cache) == "[1](8080)"


def test_render_exposes_globals():
    template = Template("{{ settings.name }}", name = "inline", settings = {"name": "lb"})
    assert template.render(DiscoveryCache.from_template(template)) == "lb"

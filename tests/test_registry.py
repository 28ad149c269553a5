"""
Tests for Target and TargetRegistry.
"""

import pytest

from yousonos.player.registry import TargetRegistry
from yousonos.player.target import Target


@pytest.fixture
def registry() -> TargetRegistry:
    return TargetRegistry()


class TestTarget:
    """Tests for the Target model."""

    def test_from_location_keeps_authority(self) -> None:
        target = Target.from_location(
            "Kitchen", "http://192.168.1.20:1400/xml/device_description.xml"
        )
        assert target.control_base_url == "http://192.168.1.20:1400"
        assert target.authority == "192.168.1.20:1400"
        assert target.host == "192.168.1.20"

    def test_from_location_without_host(self) -> None:
        with pytest.raises(ValueError):
            Target.from_location("x", "/xml/device_description.xml")

    def test_equality_ignores_name(self) -> None:
        a = Target(name="Kitchen", control_base_url="http://10.0.0.1:1400")
        b = Target(name="Kitchen (One)", control_base_url="http://10.0.0.1:1400")
        c = Target(name="Kitchen", control_base_url="http://10.0.0.2:1400")

        assert a == b
        assert hash(a) == hash(b)
        assert a != c

    def test_control_url(self) -> None:
        target = Target(name="K", control_base_url="http://10.0.0.1:1400")
        assert (
            target.control_url("/MediaRenderer/AVTransport/Control")
            == "http://10.0.0.1:1400/MediaRenderer/AVTransport/Control"
        )

    def test_immutable(self) -> None:
        target = Target(name="K", control_base_url="http://10.0.0.1:1400")
        with pytest.raises(AttributeError):
            target.name = "Other"  # type: ignore[misc]


class TestTargetRegistry:
    """Tests for TargetRegistry."""

    async def test_add_dedupes_by_authority(self, registry: TargetRegistry) -> None:
        first = Target(name="Kitchen", control_base_url="http://10.0.0.1:1400")
        again = Target(name="Kitchen again", control_base_url="http://10.0.0.1:1400")

        assert await registry.add(first) is True
        assert await registry.add(again) is False

        assert len(registry) == 1
        assert (await registry.get_by_authority("10.0.0.1:1400")).name == "Kitchen"

    async def test_replace_all(self, registry: TargetRegistry) -> None:
        await registry.add(Target(name="Old", control_base_url="http://10.0.0.9:1400"))

        count = await registry.replace_all(
            [
                Target(name="Kitchen", control_base_url="http://10.0.0.1:1400"),
                Target(name="Den", control_base_url="http://10.0.0.2:1400"),
                Target(name="Kitchen dup", control_base_url="http://10.0.0.1:1400"),
            ]
        )

        assert count == 2
        assert [t.name for t in await registry.get_all()] == ["Kitchen", "Den"]
        assert "10.0.0.9:1400" not in registry

    async def test_get_by_name(self, registry: TargetRegistry) -> None:
        await registry.add(Target(name="Kitchen (One)", control_base_url="http://10.0.0.1:1400"))

        assert (await registry.get_by_name("Kitchen (One)")).authority == "10.0.0.1:1400"
        assert (await registry.get_by_name("kitchen (one)")) is not None
        assert await registry.get_by_name("Den") is None

    async def test_exact_name_wins(self, registry: TargetRegistry) -> None:
        await registry.add(Target(name="den", control_base_url="http://10.0.0.1:1400"))
        await registry.add(Target(name="Den", control_base_url="http://10.0.0.2:1400"))

        assert (await registry.get_by_name("Den")).authority == "10.0.0.2:1400"

    async def test_names_sorted(self, registry: TargetRegistry) -> None:
        await registry.add(Target(name="Kitchen", control_base_url="http://10.0.0.1:1400"))
        await registry.add(Target(name="Bath", control_base_url="http://10.0.0.2:1400"))

        assert await registry.names() == ["Bath", "Kitchen"]

    def test_empty_registry(self, registry: TargetRegistry) -> None:
        assert len(registry) == 0
        assert "10.0.0.1:1400" not in registry

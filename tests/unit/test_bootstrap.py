"""Unit tests for netclock._bootstrap — wiring from settings.

Test Techniques Used:
    - Decision Table: host source precedence
    - Specification-based Testing: default collaborators
"""

from __future__ import annotations

from pathlib import Path

from netclock._bootstrap import build_store, create_network_clock, resolve_hosts
from netclock._events import LocalEventBus
from netclock._resolver import DEFAULT_HOSTS
from netclock._settings import SyncSettings
from netclock._store import JsonFileFallbackStore, MemoryFallbackStore
from netclock.testing import FakeAssociationFactory, FakeResolver, make_settings


class TestResolveHosts:
    """Technique: Decision Table."""

    def test_explicit_hosts_win(self, tmp_path: Path) -> None:
        hosts_file = tmp_path / "ntp.hosts"
        hosts_file.write_text("from-file.example\n")
        settings = SyncSettings(hosts=["a.example"], hosts_file=str(hosts_file))

        assert resolve_hosts(settings) == ["a.example"]

    def test_hosts_file_next(self, tmp_path: Path) -> None:
        hosts_file = tmp_path / "ntp.hosts"
        hosts_file.write_text("from-file.example\n")

        assert resolve_hosts(SyncSettings(hosts_file=str(hosts_file))) == [
            "from-file.example"
        ]

    def test_defaults_last(self) -> None:
        assert resolve_hosts(SyncSettings()) == list(DEFAULT_HOSTS)


class TestBuildStore:
    """Technique: Specification-based Testing."""

    def test_memory_without_cache_file(self) -> None:
        assert isinstance(build_store(SyncSettings()), MemoryFallbackStore)

    def test_file_with_cache_file(self, tmp_path: Path) -> None:
        store = build_store(SyncSettings(cache_file=str(tmp_path / "o.json")))

        assert isinstance(store, JsonFileFallbackStore)
        assert store.path == tmp_path / "o.json"


class TestCreateNetworkClock:
    """Technique: Specification-based Testing."""

    def test_settings_reach_controller(self) -> None:
        settings = make_settings(
            sync=SyncSettings(
                hosts=["a.example"],
                use_saved_offset_on_no_trust=False,
            )
        )

        clock = create_network_clock(
            settings,
            resolver=FakeResolver(),
            factory=FakeAssociationFactory(),
        )

        assert clock.hosts == ("a.example",)
        assert clock.use_saved_offset_on_no_trust is False
        clock.close()

    def test_given_event_bus_is_used(self) -> None:
        events = LocalEventBus()

        clock = create_network_clock(make_settings(), events=events)

        assert events.handler_count("clock_changed") == 1
        clock.close()
        assert events.handler_count("clock_changed") == 0

    async def test_collaborators_drive_a_cycle(self) -> None:
        factory = FakeAssociationFactory()
        clock = create_network_clock(
            make_settings(sync=SyncSettings(hosts=["a.example"])),
            resolver=FakeResolver(table={"a.example": ["192.0.2.1"]}),
            factory=factory,
        )

        clock.synchronize()
        await clock.wait_resolved()

        assert [a.address for a in factory.created] == ["192.0.2.1"]
        clock.close()

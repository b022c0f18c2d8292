"""Tests for the price stream service wiring."""

import asyncio
import logging

import pytest

from price_stream.config.settings import PriceStreamSettings
from price_stream.history import HistoryStore
from price_stream.models import ConnectionState
from price_stream.service import PriceStreamService

from conftest import FakeConnector, RecordingListener, settle


@pytest.fixture
def settings():
    return PriceStreamSettings(
        service_name="test-stream",
        stream={'url': 'wss://example.test/ws', 'symbols': ['BTCUSDT'], 'reconnect_delay_ms': 10},
        history={'capacity': 5},
    )


class TestPriceStreamService:
    """Test service construction, run loop and teardown."""

    def test_builds_store_from_settings(self, settings):
        service = PriceStreamService(settings, configure_logging=False)

        assert service.store.capacity == 5
        assert service.client.store is service.store
        assert service.client.config.symbols == ['btcusdt']

    def test_shared_store_is_injected(self, settings):
        store = HistoryStore(capacity=7)
        first = PriceStreamService(settings, store=store, configure_logging=False)
        second = PriceStreamService(settings, store=store, configure_logging=False)

        assert first.client.store is second.client.store is store

    def test_empty_injected_store_is_kept(self, settings):
        store = HistoryStore(capacity=7)
        assert len(store) == 0

        service = PriceStreamService(settings, store=store, configure_logging=False)

        assert service.store is store
        assert service.client.store is store
        assert service.store.capacity == 7

    def test_loads_settings_from_path(self, tmp_path):
        config_file = tmp_path / "stream.yaml"
        config_file.write_text("service_name: from-file\nhistory:\n  capacity: 3\n")

        service = PriceStreamService(str(config_file), configure_logging=False)

        assert service.settings.service_name == "from-file"
        assert service.store.capacity == 3

    def test_configures_logging(self, settings):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        try:
            PriceStreamService(settings)
            assert len(root.handlers) == 1
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)

    @pytest.mark.asyncio
    async def test_start_until_stop(self, settings):
        connector = FakeConnector()
        listener = RecordingListener()
        service = PriceStreamService(settings, listeners=[listener], connector=connector,
                                     configure_logging=False)

        runner = asyncio.create_task(service.start())
        await settle()
        assert service.client.is_connected()

        connector.latest.feed('[{"s": "BTCUSDT", "c": "10", "P": "9"}]')
        await settle()
        assert len(service.store.history("BTCUSDT")) == 1

        health = await service.health_check()
        assert health['service'] == 'test-stream'
        assert health['status'] == 'healthy'
        assert health['components']['history_store']['total_retained'] == 1

        service.stop()
        await asyncio.wait_for(runner, timeout=1)

        assert not service.client.is_connected()
        assert connector.latest.closed
        assert listener.events == ['connect', 'price_update', 'disconnect']

    @pytest.mark.asyncio
    async def test_cancellation_still_disconnects(self, settings):
        connector = FakeConnector()
        service = PriceStreamService(settings, connector=connector, configure_logging=False)

        runner = asyncio.create_task(service.start())
        await settle()
        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner

        assert connector.latest.closed
        assert service.client.state is ConnectionState.DISCONNECTED

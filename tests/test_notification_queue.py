"""Tests for the VTEX notification dispatcher."""

from tts_vtex_bridge.queue import NotificationDispatcher

from tests.fakes import SHOP_ID


class RecordingService:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.handled = []

    async def handle_marketplace_notification(self, payload, shop_id):
        if payload.get("orderId") == self.fail_on:
            raise RuntimeError("boom")
        self.handled.append((payload, shop_id))


async def test_notifications_processed_in_order():
    service = RecordingService()
    dispatcher = NotificationDispatcher(service)
    dispatcher.start()

    dispatcher.submit({"orderId": "vtex-1"}, SHOP_ID)
    dispatcher.submit({"orderId": "vtex-2"}, SHOP_ID)
    await dispatcher.drain()

    assert [p["orderId"] for p, _ in service.handled] == ["vtex-1", "vtex-2"]
    assert dispatcher.processed == 2
    await dispatcher.stop()
    assert not dispatcher.is_running


async def test_failing_notification_does_not_stop_consumer():
    service = RecordingService(fail_on="vtex-1")
    dispatcher = NotificationDispatcher(service)
    dispatcher.start()

    dispatcher.submit({"orderId": "vtex-1"}, SHOP_ID)
    dispatcher.submit({"orderId": "vtex-2"}, SHOP_ID)
    await dispatcher.drain()

    assert dispatcher.failed == 1
    assert dispatcher.processed == 1
    assert dispatcher.is_running
    await dispatcher.stop()


async def test_submit_before_start_is_queued():
    dispatcher = NotificationDispatcher(RecordingService())
    dispatcher.submit({"orderId": "vtex-1"}, SHOP_ID)

    assert dispatcher.queue.qsize() == 1
    assert not dispatcher.is_running
    await dispatcher.stop()

"""ChangeFeed（プロセス内の行変更通知）のテスト。"""
from tposlive.store.changes import STATUS_CHANNEL_ERROR, STATUS_SUBSCRIBED, ChangeFeed


def test_filters_on_table_and_columns():
    feed = ChangeFeed()
    seen = []
    feed.subscribe("purchase_order_items", {"purchase_order_id": "po1"}, lambda e: seen.append(e.new["id"]))
    assert feed.publish("purchase_order_items", "UPDATE", {"id": "a", "purchase_order_id": "po1"}) == 1
    assert feed.publish("purchase_order_items", "UPDATE", {"id": "b", "purchase_order_id": "po2"}) == 0
    assert feed.publish("live_orders", "INSERT", {"id": "c", "purchase_order_id": "po1"}) == 0
    assert seen == ["a"]


def test_handler_error_does_not_stop_delivery():
    feed = ChangeFeed()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe("t", {}, broken)
    feed.subscribe("t", {}, lambda e: seen.append(e.event))
    assert feed.publish("t", "INSERT", {"id": 1}) == 2
    assert seen == ["INSERT"]


def test_status_notifications_and_unsubscribe():
    feed = ChangeFeed()
    statuses = []
    sub = feed.subscribe("t", {}, lambda e: None, on_status=statuses.append)
    other = feed.subscribe("t", {}, lambda e: None, on_status=statuses.append)
    sub.unsubscribe()
    assert feed.subscriber_count() == 1
    feed.close(STATUS_CHANNEL_ERROR)
    assert statuses == [STATUS_SUBSCRIBED, STATUS_SUBSCRIBED, STATUS_CHANNEL_ERROR]
    assert feed.subscriber_count() == 0
    assert other.active is False

"""Tests for the customer data service."""

import re

import pytest

from kflow.customers.enums import CustomerFilter
from kflow.feed.inmemory import InMemoryChangeFeed
from kflow.realtime.service import CustomerDataService
from kflow.realtime.timers import ManualScheduler
from kflow.source.inmemory import InMemoryRecordSource
from tests.factories import CustomerRowFactory, NotificationFactory, OfferRowFactory, at


@pytest.fixture
def populated_source(source: InMemoryRecordSource) -> InMemoryRecordSource:
    source.put_customer(
        CustomerRowFactory.create(
            id="c1",
            company_name="Alpha Κουφώματα",
            email="sales@alpha.gr",
            status="active",
            customer_type="Εταιρεία",
        )
    )
    source.put_customer(
        CustomerRowFactory.create(
            id="c2",
            company_name="Beta",
            email="beta@example.com",
            telephone="2310999888",
            status="inactive",
            customer_type="Ιδιώτης",
        )
    )
    source.put_customer(CustomerRowFactory.create(id="gone", deleted_at=at(1)))
    source.put_offer(OfferRowFactory.create(id="o1", customer_id="c1", created_at=at(30)))
    source.put_offer(OfferRowFactory.create(id="o2", customer_id="c1", created_at=at(10)))
    return source


@pytest.fixture
def service(
    populated_source: InMemoryRecordSource,
    feed: InMemoryChangeFeed,
    scheduler: ManualScheduler,
) -> CustomerDataService:
    return CustomerDataService(populated_source, feed, scheduler=scheduler)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_loads_and_subscribes(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()

        assert service.started
        assert [c.id for c in service.customers] == ["c1", "c2"]
        assert service.customers[0].active_offer_count == 2
        assert [o.id for o in service.customer_offers["c1"]] == ["o1", "o2"]
        assert service.customer_offers["c2"] == ()
        assert feed.subscriber_count("customers") == 1
        assert feed.subscriber_count("offers") == 1
        assert service.is_loading is False

        await service.stop()

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_and_cancels_timers(
        self,
        service: CustomerDataService,
        feed: InMemoryChangeFeed,
        scheduler: ManualScheduler,
    ) -> None:
        await service.start()
        feed.publish(
            "offers",
            NotificationFactory.insert(
                "offers", OfferRowFactory.create(id="o3", customer_id="c1", created_at=at(20))
            ),
        )
        assert scheduler.pending > 0

        await service.stop()

        assert not service.started
        assert scheduler.pending == 0
        assert feed.subscriber_count("offers") == 0
        assert feed.publish("offers", NotificationFactory.delete("offers", {"id": "o1"})) == 0

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()
        await service.start()

        assert feed.subscriber_count("offers") == 1
        await service.stop()

    @pytest.mark.asyncio
    async def test_failed_load_keeps_empty_cache(
        self, service: CustomerDataService, populated_source: InMemoryRecordSource
    ) -> None:
        populated_source.fail_next("timeout")
        await service.start()

        assert service.customers == ()
        assert service.is_loading is False

        assert await service.reload() is True
        assert len(service.customers) == 2
        await service.stop()

    @pytest.mark.asyncio
    async def test_without_feed(self, populated_source: InMemoryRecordSource) -> None:
        service = CustomerDataService(populated_source, scheduler=ManualScheduler())
        await service.start()
        assert len(service.customers) == 2
        await service.stop()


class TestRealtimeFlow:
    @pytest.mark.asyncio
    async def test_offer_insert_via_feed(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()

        feed.publish(
            "offers",
            NotificationFactory.insert(
                "offers", OfferRowFactory.create(id="o3", customer_id="c1", created_at=at(20))
            ),
        )

        assert [o.id for o in service.customer_offers["c1"]] == ["o1", "o3", "o2"]
        assert service.customers[0].active_offer_count == 3
        assert re.fullmatch(r"Received INSERT at \d{2}:\d{2}:\d{2}", service.realtime_status)
        await service.stop()

    @pytest.mark.asyncio
    async def test_offer_change_highlights_owner(
        self,
        service: CustomerDataService,
        feed: InMemoryChangeFeed,
        scheduler: ManualScheduler,
    ) -> None:
        await service.start()
        row = OfferRowFactory.create(id="o1", customer_id="c1", created_at=at(30), amount=5.0)

        feed.publish("offers", NotificationFactory.update("offers", row))
        assert service.changed_row_id == "c1"

        scheduler.advance(1200)
        assert service.changed_row_id is None
        await service.stop()

    @pytest.mark.asyncio
    async def test_offer_delete_does_not_highlight(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()

        feed.publish(
            "offers",
            NotificationFactory.delete("offers", {"id": "o2", "customer_id": "c1"}),
        )

        assert service.changed_row_id is None
        assert [o.id for o in service.customer_offers["c1"]] == ["o1"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_customer_insert_highlights_row(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()

        feed.publish(
            "customers",
            NotificationFactory.insert(
                "customers", CustomerRowFactory.create(id="c3", company_name="Alpha Ω")
            ),
        )

        assert [c.id for c in service.customers] == ["c1", "c3", "c2"]
        assert service.changed_row_id == "c3"
        await service.stop()

    @pytest.mark.asyncio
    async def test_malformed_notification_dropped(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()

        assert service.handle_notification("offers", {"eventType": "UPDATE"}) is None
        assert service.realtime_status is None
        await service.stop()

    @pytest.mark.asyncio
    async def test_expanded_customer_refetched_after_change(
        self,
        service: CustomerDataService,
        feed: InMemoryChangeFeed,
        populated_source: InMemoryRecordSource,
        scheduler: ManualScheduler,
    ) -> None:
        """An expanded list is re-read after a patch, healing any drift."""
        await service.start()
        await service.handle_expand_customer("c1")
        assert service.expanded_customer_ids == ("c1",)

        populated_source.put_offer(
            OfferRowFactory.create(id="o9", customer_id="c1", created_at=at(40))
        )
        feed.publish(
            "offers",
            NotificationFactory.insert(
                "offers", OfferRowFactory.create(id="o3", customer_id="c1", created_at=at(20))
            ),
        )
        assert [o.id for o in service.customer_offers["c1"]] == ["o1", "o3", "o2"]

        scheduler.advance(100)
        assert service.last_realtime_update == scheduler.now_ms()
        await service.drain()

        assert [o.id for o in service.customer_offers["c1"]] == ["o9", "o1", "o2"]
        assert service.loading_offers["c1"] is False

        scheduler.advance(500)
        assert service.last_realtime_update == 0
        await service.stop()

    @pytest.mark.asyncio
    async def test_update_for_unloaded_customer_fetches(
        self,
        service: CustomerDataService,
        feed: InMemoryChangeFeed,
        populated_source: InMemoryRecordSource,
    ) -> None:
        await service.start()
        feed.publish(
            "customers",
            NotificationFactory.insert("customers", CustomerRowFactory.create(id="c4")),
        )
        populated_source.put_offer(OfferRowFactory.create(id="x1", customer_id="c4"))

        feed.publish(
            "offers",
            NotificationFactory.update(
                "offers", OfferRowFactory.create(id="x1", customer_id="c4", amount=3.0)
            ),
        )
        await service.drain()

        assert [o.id for o in service.customer_offers["c4"]] == ["x1"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_failing_highlight_listener_does_not_drop_change(
        self, service: CustomerDataService, feed: InMemoryChangeFeed
    ) -> None:
        await service.start()
        seen: list[str | None] = []

        def broken(row_id: str | None) -> None:
            raise RuntimeError("ui listener broke")

        service.subscribe_highlight(broken)
        service.subscribe_highlight(seen.append)

        delivered = feed.publish(
            "offers",
            NotificationFactory.insert(
                "offers", OfferRowFactory.create(id="o3", customer_id="c1", created_at=at(20))
            ),
        )

        assert delivered == 1
        assert [o.id for o in service.customer_offers["c1"]] == ["o1", "o3", "o2"]
        assert service.customers[0].active_offer_count == 3
        assert service.changed_row_id == "c1"
        assert seen == ["c1"]
        await service.stop()


class TestExpansion:
    @pytest.mark.asyncio
    async def test_expand_and_collapse(self, service: CustomerDataService) -> None:
        await service.start()

        assert await service.handle_expand_customer("c2") is True
        assert service.customer_being_expanded == "c2"
        assert await service.fetch_customer_offers("c2") is False
        assert await service.fetch_customer_offers("c2", force_refresh=True) is True
        await service.stop()


class TestFilters:
    @pytest.mark.asyncio
    async def test_status_filter(self, service: CustomerDataService) -> None:
        await service.start()

        service.set_active_filter(CustomerFilter.ACTIVE)
        assert [c.id for c in service.filtered_customers] == ["c1"]
        service.set_active_filter("inactive")
        assert [c.id for c in service.filtered_customers] == ["c2"]
        service.set_active_filter("bogus")
        assert service.active_filter is CustomerFilter.INACTIVE
        await service.stop()

    @pytest.mark.asyncio
    async def test_type_filter(self, service: CustomerDataService) -> None:
        await service.start()

        service.set_selected_customer_types(["Ιδιώτης"])
        assert [c.id for c in service.filtered_customers] == ["c2"]
        service.set_selected_customer_types([])
        assert len(service.filtered_customers) == 2
        await service.stop()

    @pytest.mark.asyncio
    async def test_search_single_column(self, service: CustomerDataService) -> None:
        await service.start()

        service.set_search("κουφ")
        assert [c.id for c in service.filtered_customers] == ["c1"]
        service.set_search("example", column="email")
        assert [c.id for c in service.filtered_customers] == ["c2"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_search_all_columns(self, service: CustomerDataService) -> None:
        await service.start()

        service.set_search("2310", column="all")
        assert [c.id for c in service.filtered_customers] == ["c2"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_invalid_search_column_falls_back(self, service: CustomerDataService) -> None:
        await service.start()

        service.set_search("beta", column="password")
        assert service.search == ("beta", "company_name")
        assert [c.id for c in service.filtered_customers] == ["c2"]
        await service.stop()

    def test_customer_types_default(self, service: CustomerDataService) -> None:
        assert "Εταιρεία" in service.customer_types

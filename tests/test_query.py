# tests/test_query.py
import asyncio
import logging

from giftshop.database import MemoryDatabase
from giftshop.errors import RemoteServiceError
from giftshop.query import (ProductQuery, admin_products, dashboard_stats, featured_products,
                            list_categories, list_featured_items, run_product_query)


def _product(pid, status, tags, created_at, category_id="bears"):
    return {
        "id": pid, "name": f"Bear {pid}", "description": "soft", "price": 1000, "offer_price": None,
        "images": [f"https://img/{pid}.jpg"], "tags": tags, "status": status, "created_by": "u1",
        "category_id": category_id, "created_at": created_at,
    }


def seeded_db():
    db = MemoryDatabase()
    db.tables["products"] = {r["id"]: r for r in [
        _product("p1", "live", ["New Arrival"], "2024-01-01T10:00:00+00:00"),
        _product("p2", "draft", ["New Arrival"], "2024-01-02T10:00:00+00:00"),
        _product("p3", "live", ["Kids Favorite", "New Arrival"], "2024-01-03T10:00:00+00:00", category_id="gifts"),
        _product("p4", "live", ["Kids Favorite"], "2024-01-04T10:00:00+00:00"),
        _product("p5", "out_of_stock", ["New Arrival"], "2024-01-05T10:00:00+00:00"),
    ]}
    return db


class FailingDatabase(MemoryDatabase):
    async def select(self, table, filters=(), order=(), limit=None, columns="*"):
        raise RemoteServiceError("select " + table)


def test_public_tag_filter_returns_live_tagged_newest_first():
    result = asyncio.run(run_product_query(seeded_db(), ProductQuery.public(category_id="all", tag="New Arrival")))
    assert [p.id for p in result.items] == ["p3", "p1"]
    assert result.loading is False
    assert result.error is None


def test_public_query_never_returns_unpublished_products():
    db = seeded_db()
    for category in (None, "all", "bears", "gifts"):
        for tag in (None, "all", "New Arrival", "Kids Favorite"):
            result = asyncio.run(run_product_query(db, ProductQuery.public(category, tag)))
            assert all(p.status == "live" for p in result.items)


def test_all_filters_match_unfiltered_query():
    db = seeded_db()
    unfiltered = asyncio.run(run_product_query(db, ProductQuery()))
    via_params = asyncio.run(run_product_query(db, ProductQuery.from_params("all", "all", "all")))
    assert [p.id for p in unfiltered.items] == ["p5", "p4", "p3", "p2", "p1"]
    assert [p.id for p in via_params.items] == [p.id for p in unfiltered.items]


def test_category_and_status_filters():
    db = seeded_db()
    gifts = asyncio.run(run_product_query(db, ProductQuery.public(category_id="gifts")))
    assert [p.id for p in gifts.items] == ["p3"]
    drafts = asyncio.run(run_product_query(db, ProductQuery.from_params(status="draft")))
    assert [p.id for p in drafts.items] == ["p2"]


def test_same_timestamp_newest_insert_first():
    db = MemoryDatabase()
    for pid in ("a", "b", "c"):
        db.tables["products"][pid] = _product(pid, "live", [], "2024-01-01T00:00:00+00:00")
    result = asyncio.run(run_product_query(db, ProductQuery.public()))
    assert [p.id for p in result.items] == ["c", "b", "a"]


def test_featured_products_capped_at_six():
    db = MemoryDatabase()
    for i in range(9):
        db.tables["products"][f"p{i}"] = _product(f"p{i}", "live", [], f"2024-01-0{i + 1}T00:00:00+00:00")
    result = asyncio.run(featured_products(db))
    assert len(result.items) == 6
    assert result.items[0].id == "p8"


def test_failed_query_degrades_to_empty_result(caplog):
    with caplog.at_level(logging.ERROR, logger="giftshop.query"):
        result = asyncio.run(run_product_query(FailingDatabase(), ProductQuery.public()))
    assert result.items == []
    assert result.loading is False
    assert "select products failed" in result.error
    assert "Error fetching products" in caplog.text


def test_categories_sorted_by_display_order_then_id():
    db = MemoryDatabase()
    for cid, order in (("c", 1), ("b", 2), ("a", 2), ("d", 0)):
        db.tables["categories"][cid] = {"id": cid, "name": cid, "slug": cid, "display_order": order}
    assert [c.id for c in asyncio.run(list_categories(db))] == ["d", "c", "a", "b"]
    assert asyncio.run(list_categories(FailingDatabase())) == []


def test_featured_items_active_only_in_display_order():
    db = MemoryDatabase()
    for fid, order, active in (("f3", 1, True), ("f2", 0, False), ("f1", 1, True), ("f0", 0, True)):
        db.tables["featured_items"][fid] = {"id": fid, "title": fid.upper(), "type": "banner",
                                            "display_order": order, "is_active": active}
    items = asyncio.run(list_featured_items(db))
    assert [i.id for i in items] == ["f0", "f1", "f3"]
    assert all(i.is_active for i in items)
    assert asyncio.run(list_featured_items(FailingDatabase())) == []


def test_admin_listing_joins_creator_name_and_stats():
    db = seeded_db()
    db.tables["profiles"]["u1"] = {"id": "u1", "full_name": "Sita", "role": "staff"}
    result = asyncio.run(admin_products(db, ProductQuery()))
    assert {p.creator_name for p in result.items} == {"Sita"}
    stats = asyncio.run(dashboard_stats(db))
    assert stats == {"total": 5, "live": 3, "draft": 1, "out_of_stock": 1}

from decimal import Decimal

from sync_worker.adapters.base import CanonicalProduct
from sync_worker.diffing.engine import CREATE, SKIP, UPDATE, DiffEngine, content_hash
from sync_worker.models import ProductSnapshot


def _product(sku: str, title: str = "Widget", price: str | None = "9.99", **extra) -> CanonicalProduct:
    return CanonicalProduct(
        sku=sku,
        title=title,
        description="A useful widget",
        price=Decimal(price) if price is not None else None,
        **extra,
    )


def _snapshot(session, product: CanonicalProduct, merchant_id: str = "m1") -> ProductSnapshot:
    snapshot = ProductSnapshot(
        merchant_id=merchant_id,
        sku=product.sku,
        payload=product.to_payload(),
        content_hash=content_hash(product),
        last_sync_id="sync_previous",
    )
    session.add(snapshot)
    session.commit()
    return snapshot


def test_content_hash_ignores_price_formatting():
    assert content_hash(_product("A", price="10")) == content_hash(_product("A", price="10.00"))
    assert content_hash(_product("A", price="10")) != content_hash(_product("A", price="10.01"))


def test_content_hash_ignores_metadata_and_sku():
    plain = _product("A")
    tagged = _product("B", metadata={"brand": "Acme"})
    assert content_hash(plain) == content_hash(tagged)


def test_unknown_sku_is_created(session):
    result = DiffEngine(session).diff("m1", [_product("A")], incremental_enabled=True)
    assert [decision.action for decision in result.decisions] == [CREATE]


def test_unchanged_product_skipped_when_incremental(session):
    _snapshot(session, _product("A"))
    result = DiffEngine(session).diff("m1", [_product("A")], incremental_enabled=True)

    assert [decision.action for decision in result.decisions] == [SKIP]


def test_unchanged_product_updated_when_not_incremental(session):
    _snapshot(session, _product("A"))
    result = DiffEngine(session).diff("m1", [_product("A")], incremental_enabled=False)

    assert [decision.action for decision in result.decisions] == [UPDATE]


def test_changed_product_updated(session):
    _snapshot(session, _product("A"))
    result = DiffEngine(session).diff("m1", [_product("A", title="Widget v2")], incremental_enabled=True)

    assert result.updates[0].product.title == "Widget v2"


def test_snapshots_are_scoped_per_merchant(session):
    _snapshot(session, _product("A"), merchant_id="other")
    result = DiffEngine(session).diff("m1", [_product("A")], incremental_enabled=True)

    assert [decision.action for decision in result.decisions] == [CREATE]


def test_duplicate_sku_keeps_first(session):
    result = DiffEngine(session).diff("m1", [_product("A"), _product("A", title="Again")], incremental_enabled=True)

    assert len(result.decisions) == 1
    assert result.decisions[0].product.title == "Widget"
    assert result.errors[0].stage == "diff"
    assert result.errors[0].sku == "A"


def test_missing_skus_only_when_detecting_deletions(session):
    _snapshot(session, _product("A"))
    _snapshot(session, _product("Z"))
    engine = DiffEngine(session)

    assert engine.diff("m1", [_product("A")], incremental_enabled=True).missing_skus == []
    detected = engine.diff("m1", [_product("A")], incremental_enabled=True, detect_deletions=True)
    assert detected.missing_skus == ["Z"]


def test_failed_skus_are_not_missing(session):
    _snapshot(session, _product("A"))
    _snapshot(session, _product("Z"))

    result = DiffEngine(session).diff("m1", [_product("A")], incremental_enabled=True, detect_deletions=True, failed_skus={"Z"})

    assert result.missing_skus == []

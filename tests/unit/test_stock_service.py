from concurrent.futures import ThreadPoolExecutor
import threading

import pytest

from backend.errors import ConflictError, InsufficientStock, ProductNotFound
from backend.stock import service as stock_service


def test_reserve_decrements_and_returns_remaining(fake_db):
    fake_db.add_product("p1", stock=5)
    assert stock_service.reserve("p1", 2) == 3
    assert fake_db.stock("p1") == 3


def test_reserve_insufficient_carries_available(fake_db):
    fake_db.add_product("p1", stock=2)
    with pytest.raises(InsufficientStock) as exc:
        stock_service.reserve("p1", 3)
    assert exc.value.status_code == 400
    assert exc.value.product_id == "p1"
    assert exc.value.available == 2
    assert exc.value.extra["available"] == 2
    assert fake_db.stock("p1") == 2


def test_reserve_unknown_product(fake_db):
    with pytest.raises(ProductNotFound):
        stock_service.reserve("missing", 1)


def test_reserve_rejects_non_positive_quantity(fake_db):
    fake_db.add_product("p1", stock=2)
    with pytest.raises(ValueError):
        stock_service.reserve("p1", 0)


def test_concurrent_reservations_never_oversell(fake_db):
    fake_db.add_product("p1", stock=5)
    barrier = threading.Barrier(12)

    def _try():
        barrier.wait()
        try:
            stock_service.reserve("p1", 1)
            return "ok"
        except InsufficientStock:
            return "short"

    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(pool.map(lambda _: _try(), range(12)))

    assert results.count("ok") == 5
    assert results.count("short") == 7
    assert fake_db.stock("p1") == 0


def test_last_unit_race_single_winner(fake_db):
    fake_db.add_product("p1", stock=1)
    barrier = threading.Barrier(2)

    def _try():
        barrier.wait()
        try:
            stock_service.reserve("p1", 1)
            return True
        except InsufficientStock:
            return False

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: _try(), range(2)))

    assert sorted(results) == [False, True]
    assert fake_db.stock("p1") == 0


def test_reserve_gives_up_after_max_attempts(fake_db, monkeypatch):
    fake_db.add_product("p1", stock=5)
    # Un autre écrivain gagne toujours la course
    monkeypatch.setattr("backend.stock.service.products_repo.compare_and_set_stock", lambda *a: False)
    with pytest.raises(ConflictError):
        stock_service.reserve("p1", 1)
    assert fake_db.stock("p1") == 5


def test_reserve_all_is_all_or_nothing(fake_db):
    fake_db.add_product("a", stock=5)
    fake_db.add_product("b", stock=1)
    with pytest.raises(InsufficientStock) as exc:
        stock_service.reserve_all({"a": 2, "b": 3})
    assert exc.value.product_id == "b"
    assert fake_db.stock("a") == 5
    assert fake_db.stock("b") == 1


def test_reserve_all_returns_reservations(fake_db):
    fake_db.add_product("a", stock=5)
    fake_db.add_product("b", stock=4)
    reserved = stock_service.reserve_all({"a": 2, "b": 4})
    assert reserved == [("a", 2), ("b", 4)]
    assert fake_db.stock("a") == 3
    assert fake_db.stock("b") == 0


def test_release_restores_units(fake_db):
    fake_db.add_product("a", stock=1)
    assert stock_service.release("a", 2) == 3
    assert fake_db.stock("a") == 3


def test_release_all_continues_after_failure(fake_db):
    fake_db.add_product("a", stock=0)
    # 'ghost' n'existe plus: la libération échoue mais 'a' est tout de même restitué
    stock_service.release_all([("a", 2), ("ghost", 1)])
    assert fake_db.stock("a") == 2

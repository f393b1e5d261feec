import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shopcore.domain.errors import CheckoutInProgressError, StorageUnavailableError
from shopcore.services.lock_service import LockService


def test_acquire_many_locks_sorted_and_releases(redis_client):
    locks = LockService(client=redis_client)
    with locks.acquire_many(["P2", "P1", "P2"]) as held:
        assert held.product_ids == ["P1", "P2"]
        assert set(redis_client.store) == {"checkout:product:P1:lock", "checkout:product:P2:lock"}
    assert redis_client.store == {}


def test_partial_acquire_is_rolled_back(redis_client):
    redis_client.store["checkout:product:P2:lock"] = "other"
    locks = LockService(client=redis_client)

    with pytest.raises(CheckoutInProgressError) as exc:
        locks.acquire_many(["P1", "P2", "P3"])
    assert exc.value.product_id == "P2"
    assert redis_client.store == {"checkout:product:P2:lock": "other"}


def test_release_only_own_token(redis_client):
    locks = LockService(client=redis_client)
    assert locks.acquire_product_lock("P1", "mine")
    assert not locks.acquire_product_lock("P1", "theirs")
    assert not locks.release_product_lock("P1", "theirs")
    assert locks.release_product_lock("P1", "mine")


class BrokenRedis:
    def set(self, *args, **kwargs):
        raise RedisConnectionError("no route to host")

    def eval(self, *args):
        raise RedisConnectionError("no route to host")


def test_lock_store_outage():
    locks = LockService(client=BrokenRedis())
    with pytest.raises(StorageUnavailableError):
        locks.acquire_product_lock("P1", "t")
    assert locks.release_product_lock("P1", "t") is False

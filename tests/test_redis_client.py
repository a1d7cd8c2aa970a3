import json
from unittest.mock import MagicMock

from redis.exceptions import RedisError

from storage.redis_client import ReportCache, ScrapeLock


class TestScrapeLock:
    def test_acquire_sets_key_only_if_absent(self):
        client = MagicMock()
        client.set.return_value = True
        lock = ScrapeLock(client, key="test:lock", ttl=60)

        assert lock.acquire() is True

        args, kwargs = client.set.call_args
        assert args[0] == "test:lock"
        assert args[1] == lock.token
        assert kwargs == {"nx": True, "ex": 60}

    def test_acquire_fails_when_held_elsewhere(self):
        client = MagicMock()
        client.set.return_value = None
        lock = ScrapeLock(client, key="test:lock", ttl=60)

        assert lock.acquire() is False
        assert lock.token is None

    def test_release_deletes_only_own_token(self):
        client = MagicMock()
        client.set.return_value = True
        lock = ScrapeLock(client, key="test:lock", ttl=60)
        lock.acquire()
        token = lock.token

        lock.release()

        script, numkeys, key, argv = client.eval.call_args.args
        assert (numkeys, key, argv) == (1, "test:lock", token)
        assert lock.token is None

    def test_release_without_lock_is_noop(self):
        client = MagicMock()

        ScrapeLock(client, key="test:lock", ttl=60).release()

        client.eval.assert_not_called()

    def test_release_error_is_logged_not_raised(self):
        client = MagicMock()
        client.set.return_value = True
        client.eval.side_effect = RedisError("gone")
        lock = ScrapeLock(client, key="test:lock", ttl=60)
        lock.acquire()

        lock.release()

        assert lock.token is None

    def test_hold_releases_on_exit(self):
        client = MagicMock()
        client.set.return_value = True
        lock = ScrapeLock(client, key="test:lock", ttl=60)

        with lock.hold() as acquired:
            assert acquired is True

        client.eval.assert_called_once()


class TestReportCache:
    def test_save_and_load(self):
        store = {}
        client = MagicMock()
        client.set.side_effect = lambda key, value: store.__setitem__(key, value)
        client.get.side_effect = store.get
        cache = ReportCache(client, key="test:report")

        assert cache.save({"stats": {"products_found": 3}}) is True

        loaded = cache.load()
        assert loaded["stats"] == {"products_found": 3}
        assert "timestamp" in loaded
        assert json.loads(store["test:report"])["stats"]["products_found"] == 3

    def test_load_missing_report(self):
        client = MagicMock()
        client.get.return_value = None

        assert ReportCache(client, key="test:report").load() is None

    def test_save_failure_returns_false(self):
        client = MagicMock()
        client.set.side_effect = RedisError("read only replica")

        assert ReportCache(client, key="test:report").save({}) is False

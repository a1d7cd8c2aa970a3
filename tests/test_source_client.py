import json

import httpx
import pytest

from config.settings import SourceSettings
from crawlers.core.exceptions import SourceUnavailable
from crawlers.core.source_client import RetryPolicy
from crawlers.platforms.avva import AvvaCatalogClient


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def record(product_id, price=100):
    return {"productId": product_id, "productCartPrice": price, "name": f"Product {product_id}"}


def page_number(request: httpx.Request) -> int:
    return json.loads(request.url.params["PagingJson"])["PageNumber"]


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def source_config():
    return SourceSettings(
        base_url="https://shop.test",
        page_delay=0.5,
        category_delay=2.0,
        max_retries=3,
        backoff_base_delay=1.5,
        user_agent="tracker-test/1.0",
        user_agent_rotation=False,
    )


@pytest.fixture
def make_client(source_config, sleeper):
    def factory(handler, config=None):
        return AvvaCatalogClient(
            config=config or source_config,
            transport=httpx.MockTransport(handler),
            sleep=sleeper
        )
    return factory


def scripted(responses):
    """요청마다 준비된 응답을 순서대로 반환하는 핸들러"""
    requests = []

    def handler(request):
        requests.append(request)
        response = responses[min(len(requests), len(responses)) - 1]
        if isinstance(response, Exception):
            raise response
        # 같은 응답 객체를 재사용하지 않도록 복사
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    handler.requests = requests
    return handler


class TestPagination:
    async def test_fetches_until_empty_page(self, make_client, sleeper):
        pages = {1: [record(1), record(2)], 2: [record(3)], 3: []}
        seen = []

        def handler(request):
            seen.append(page_number(request))
            return httpx.Response(200, json={"products": pages[page_number(request)]})

        async with make_client(handler) as client:
            result = [page async for page in client.fetch_all_pages(1154)]

        assert [[i.external_id for i in page] for page in result] == [[1, 2], [3]]
        assert seen == [1, 2, 3]
        assert sleeper.calls == [0.5, 0.5]

    async def test_page_of_rejected_records_does_not_end_pagination(self, make_client):
        pages = {1: [{"productId": 1}], 2: [record(2)], 3: []}

        def handler(request):
            return httpx.Response(200, json={"products": pages[page_number(request)]})

        async with make_client(handler) as client:
            result = [page async for page in client.fetch_all_pages(1154)]

        assert [[i.external_id for i in page] for page in result] == [[], [2]]

    async def test_null_records_are_skipped(self, make_client):
        pages = {1: [None, record(1)], 2: []}

        def handler(request):
            return httpx.Response(200, json={"products": pages[page_number(request)]})

        async with make_client(handler) as client:
            result = [page async for page in client.fetch_all_pages(1154)]

        assert [[i.external_id for i in page] for page in result] == [[1]]

    async def test_products_that_are_not_a_list_fail(self, make_client):
        handler = scripted([httpx.Response(200, json={"products": {"productId": 1}})])

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable, match="Malformed response"):
                await client.fetch_page(1154, 1)

        assert len(handler.requests) == 1

    async def test_missing_products_key_is_an_empty_page(self, make_client):
        async with make_client(lambda request: httpx.Response(200, json={"products": None})) as client:
            result = [page async for page in client.fetch_all_pages(1154)]

        assert result == []

    async def test_request_shape(self, make_client):
        handler = scripted([httpx.Response(200, json={"products": []})])

        async with make_client(handler) as client:
            await client.fetch_page(1154, 2)

        request = handler.requests[0]
        assert request.url.host == "shop.test"
        assert request.url.path == "/api/product/GetProductList"
        assert request.url.params["PageId"] == "1154"
        assert json.loads(request.url.params["FilterJson"])["CategoryIdList"] == [1154]
        paging = json.loads(request.url.params["PagingJson"])
        assert paging["PageNumber"] == 2
        assert paging["PageItemCount"] == 48
        assert request.headers["User-Agent"] == "tracker-test/1.0"


class TestRetries:
    async def test_rate_limit_backs_off_exponentially(self, make_client, sleeper):
        handler = scripted([
            httpx.Response(429),
            httpx.Response(429),
            httpx.Response(200, json={"products": [record(1)]}),
        ])

        async with make_client(handler) as client:
            items = await client.fetch_page(1154, 1)

        assert [i.external_id for i in items] == [1]
        assert sleeper.calls == [1.5, 3.0]

    async def test_rate_limit_gives_up_after_max_attempts(self, make_client, sleeper):
        handler = scripted([httpx.Response(503)])

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable) as exc_info:
                await client.fetch_page(1154, 1)

        assert exc_info.value.status_code == 503
        assert len(handler.requests) == 3
        assert sleeper.calls == [1.5, 3.0]

    async def test_other_http_error_is_retried_once(self, make_client, sleeper):
        handler = scripted([
            httpx.Response(500),
            httpx.Response(200, json={"products": [record(1)]}),
        ])

        async with make_client(handler) as client:
            items = await client.fetch_page(1154, 1)

        assert len(items) == 1
        assert sleeper.calls == [1.5]

    async def test_repeated_server_error_fails(self, make_client):
        handler = scripted([httpx.Response(500)])

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable) as exc_info:
                await client.fetch_page(1154, 1)

        assert exc_info.value.status_code == 500
        assert len(handler.requests) == 2
        assert client.error_count == 2

    async def test_connection_error_is_retried_once(self, make_client):
        handler = scripted([httpx.ConnectError("connection refused")])

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable):
                await client.fetch_page(1154, 1)

        assert len(handler.requests) == 2

    async def test_malformed_json_fails_after_retry(self, make_client):
        handler = scripted([httpx.Response(200, content=b"<html>maintenance</html>")])

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable):
                await client.fetch_page(1154, 1)

        assert len(handler.requests) == 2

    async def test_unexpected_payload_shape_is_not_retried(self, make_client):
        handler = scripted([httpx.Response(200, json=[record(1)])])

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable):
                await client.fetch_page(1154, 1)

        assert len(handler.requests) == 1


class TestDelays:
    async def test_wait_between_categories(self, make_client, sleeper):
        client = make_client(scripted([httpx.Response(200, json={})]))

        await client.wait_between_categories()

        assert sleeper.calls == [2.0]

    async def test_zero_category_delay_does_not_sleep(self, make_client, source_config, sleeper):
        config = source_config.model_copy(update={"category_delay": 0})
        client = make_client(scripted([httpx.Response(200, json={})]), config=config)

        await client.wait_between_categories()

        assert sleeper.calls == []


def test_retry_policy_backoff():
    policy = RetryPolicy(max_attempts=4, base_delay=2.0)

    assert [policy.backoff(n) for n in range(3)] == [2.0, 4.0, 8.0]
    assert policy.is_rate_limited(429)
    assert not policy.is_rate_limited(500)


def test_category_url(make_client):
    client = make_client(scripted([]))

    assert client.category_url("erkek-t-shirt") == "https://shop.test/erkek-t-shirt"


async def test_stats_count_requests(make_client):
    handler = scripted([httpx.Response(200, json={"products": []})])

    async with make_client(handler) as client:
        await client.fetch_page(1154, 1)
        stats = client.get_stats()

    assert stats["source"] == "avva"
    assert stats["request_count"] == 1

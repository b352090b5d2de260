import json
import time
import unittest

from fastapi.testclient import TestClient

from market_tracker.config.settings import Settings
from market_tracker.integrations.local_storage import MemoryStorage
from market_tracker.main import create_app


class StubRestClient:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def get_quote(self, symbol: str) -> dict:
        self.calls.append(symbol)
        return {"symbol": symbol, "price": 150.0, "change_pct": 1.2, "source": "polygon"}


class RateLimitRestClient:
    def get_quote(self, symbol: str) -> dict:
        class Response:
            status_code = 429

        class RateLimitError(Exception):
            def __init__(self):
                self.response = Response()

        raise RateLimitError()


def _settings(**overrides) -> Settings:
    values = {"MARKET_SYNC_ON_STARTUP": False, "MARKET_SYNC_DELAY_SEC": 0.0}
    values.update(overrides)
    return Settings(**values)


def _wait_for(client: TestClient, predicate, timeout: float = 2.0) -> dict:
    deadline = time.monotonic() + timeout
    body = client.get('/api/watchlist').json()
    while not predicate(body) and time.monotonic() < deadline:
        time.sleep(0.01)
        body = client.get('/api/watchlist').json()
    return body


class MarketEndpointTest(unittest.TestCase):
    def test_market_quote_success(self):
        app = create_app(_settings(), storage=MemoryStorage(), rest_client=StubRestClient())

        with TestClient(app) as client:
            res = client.get('/api/market', params={'symbol': 'aapl'})

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {'symbol': 'AAPL', 'price': '150.00', 'changePercent': '+1.20%'})

    def test_market_quote_requires_symbol(self):
        app = create_app(_settings(), storage=MemoryStorage(), rest_client=StubRestClient())

        with TestClient(app) as client:
            res = client.get('/api/market')

        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {'error': 'SYMBOL REQUIRED'})

    def test_market_quote_rate_limited(self):
        app = create_app(_settings(), storage=MemoryStorage(), rest_client=RateLimitRestClient())

        with TestClient(app) as client:
            res = client.get('/api/market', params={'symbol': 'AAPL'})

        self.assertEqual(res.status_code, 429)
        self.assertEqual(res.json(), {'error': 'RATE LIMITED'})

    def test_market_quote_without_api_key(self):
        app = create_app(_settings(POLYGON_API_KEY=None), storage=MemoryStorage())

        with TestClient(app) as client:
            res = client.get('/api/market', params={'symbol': 'AAPL'})

        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {'error': 'API KEY MISSING'})


class WatchlistEndpointTest(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.rest_client = StubRestClient()
        self.app = create_app(_settings(), storage=self.storage, rest_client=self.rest_client)

    def test_add_symbol_fetches_quote(self):
        with TestClient(self.app) as client:
            res = client.post('/api/watchlist', json={'symbol': ' aapl '})
            self.assertEqual(res.status_code, 201)
            self.assertEqual(res.json(), {'symbol': 'AAPL', 'added': True})

            body = _wait_for(client, lambda b: b['quotes'].get('AAPL') is not None)

        self.assertEqual(body['symbols'], ['AAPL'])
        self.assertEqual(body['status'], 'Updated')
        self.assertEqual(body['quotes']['AAPL'], {'price': '150.00', 'changePercent': '+1.20%', 'error': None})
        self.assertEqual(json.loads(self.storage.get_item('alpha-watchlist')), ['AAPL'])

    def test_duplicate_and_blank_adds_are_noops(self):
        with TestClient(self.app) as client:
            client.post('/api/watchlist', json={'symbol': 'AAPL'})
            duplicate = client.post('/api/watchlist', json={'symbol': 'aapl'})
            blank = client.post('/api/watchlist', json={'symbol': '   '})
            body = client.get('/api/watchlist').json()

        self.assertEqual(duplicate.status_code, 200)
        self.assertEqual(duplicate.json(), {'symbol': 'AAPL', 'added': False})
        self.assertEqual(blank.json(), {'symbol': None, 'added': False})
        self.assertEqual(body['symbols'], ['AAPL'])

    def test_remove_symbol_drops_quote_and_resets_status(self):
        with TestClient(self.app) as client:
            client.post('/api/watchlist', json={'symbol': 'AAPL'})
            _wait_for(client, lambda b: b['quotes'].get('AAPL') is not None)

            res = client.delete('/api/watchlist/aapl')
            body = client.get('/api/watchlist').json()

        self.assertEqual(res.json(), {'symbol': 'AAPL', 'removed': True})
        self.assertEqual(body, {'status': 'Ready', 'symbols': [], 'quotes': {}})
        self.assertNotIn('AAPL', self.app.state.quote_cache)

    def test_remove_unknown_symbol(self):
        with TestClient(self.app) as client:
            res = client.delete('/api/watchlist/MSFT')

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {'symbol': 'MSFT', 'removed': False})

    def test_manual_sync_updates_status(self):
        self.storage.set_item('alpha-watchlist', json.dumps(['TSLA', 'AAPL']))

        with TestClient(self.app) as client:
            before = client.get('/api/watchlist').json()
            res = client.post('/api/watchlist/sync')
            body = _wait_for(client, lambda b: b['status'] == 'Updated')
            metrics = client.get('/api/metrics/sync').json()

        self.assertEqual(before['symbols'], ['TSLA', 'AAPL'])
        self.assertEqual(before['status'], 'Ready')
        self.assertEqual(before['quotes'], {'TSLA': None, 'AAPL': None})
        self.assertEqual(res.status_code, 202)
        self.assertTrue(res.json()['accepted'])
        self.assertEqual(body['status'], 'Updated')
        self.assertEqual(self.rest_client.calls, ['TSLA', 'AAPL'])
        self.assertEqual(metrics['syncs_completed'], 1)
        self.assertEqual(metrics['fetches'], 2)
        self.assertEqual(metrics['upstream_fetches'], 2)

    def test_corrupt_storage_starts_with_empty_watchlist(self):
        self.storage.set_item('alpha-watchlist', 'not json')

        with TestClient(self.app) as client:
            body = client.get('/api/watchlist').json()

        self.assertEqual(body, {'status': 'Ready', 'symbols': [], 'quotes': {}})


if __name__ == '__main__':
    unittest.main()

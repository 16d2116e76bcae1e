from unittest import mock

import requests
from django.core.cache import cache
from django.test import SimpleTestCase

from yield_engine.exceptions import PriceUnavailableError
from yield_engine.oracle import CoinGeckoPriceOracle, StaticPriceOracle


class StaticPriceOracleTests(SimpleTestCase):

    def test_case_insensitive_lookup(self):
        oracle = StaticPriceOracle({"weth": 2500})
        self.assertEqual(oracle.get_price("WETH"), 2500.0)
        oracle.set_price("usdc", 1)
        self.assertEqual(oracle.get_prices(["USDC", "PEPE"]), {"USDC": 1.0, "PEPE": None})

    def test_unknown_symbol(self):
        with self.assertRaises(PriceUnavailableError) as ctx:
            StaticPriceOracle().get_price("PEPE")
        self.assertEqual(ctx.exception.symbol, "PEPE")


class CoinGeckoPriceOracleTests(SimpleTestCase):

    def setUp(self):
        cache.clear()
        self.session = mock.Mock(spec=requests.Session)
        self.oracle = CoinGeckoPriceOracle(base_url="https://cg.test/api/v3/", api_key="demo-key",
                                           ids={"WETH": "ethereum"}, cache_seconds=60, timeout=5,
                                           session=self.session)

    def _response(self, payload):
        response = mock.Mock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        return response

    def test_fetches_and_caches(self):
        self.session.get.return_value = self._response({"ethereum": {"usd": 2500.5}})
        self.assertEqual(self.oracle.get_price("weth"), 2500.5)
        self.assertEqual(self.oracle.get_price("WETH"), 2500.5)
        self.session.get.assert_called_once_with(
            "https://cg.test/api/v3/simple/price",
            params={"ids": "ethereum", "vs_currencies": "usd"},
            headers={"x-cg-demo-api-key": "demo-key"},
            timeout=5,
        )

    def test_unmapped_symbol(self):
        with self.assertRaises(PriceUnavailableError):
            self.oracle.get_price("PEPE")
        self.session.get.assert_not_called()

    def test_request_failure(self):
        self.session.get.side_effect = requests.ConnectionError("down")
        with self.assertRaises(PriceUnavailableError):
            self.oracle.get_price("WETH")

    def test_missing_price_in_payload(self):
        self.session.get.return_value = self._response({})
        with self.assertRaises(PriceUnavailableError):
            self.oracle.get_price("WETH")

from unittest import mock

from django.test import SimpleTestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from yield_engine.views.utils import get_service

from .factories import ACCOUNT, STATIC_ENGINE_SETTINGS

GATE_PAYLOAD = {
    "actions": [
        {"id": "keep", "type": "Migrate", "from_protocol": "Legacy Lender", "to_protocol": "EulerSwap",
         "asset": "USDC", "amount": 1000, "expected_gain": 3.0, "gas_estimate": 20.0, "priority": "High",
         "auto_execute": True, "account_key": ACCOUNT},
        {"id": "small", "type": "Migrate", "to_protocol": "EulerSwap", "asset": "USDC", "amount": 1000,
         "expected_gain": 0.2, "gas_estimate": 20.0, "priority": "Medium", "auto_execute": True},
        {"id": "banned", "type": "Deposit", "to_protocol": "Shady", "asset": "USDC", "amount": 1000,
         "expected_gain": 9.0, "gas_estimate": 20.0, "priority": "High", "auto_execute": True},
    ],
    "config": {
        "enabled": True,
        "max_slippage": 1.0,
        "min_yield_difference": 1.0,
        "max_gas_per_rebalance": 50.0,
        "blacklisted_protocols": ["Shady"],
    },
}


@override_settings(YIELD_ENGINE=STATIC_ENGINE_SETTINGS)
class EngineViewTests(SimpleTestCase):

    def setUp(self):
        get_service.cache_clear()
        self.client = APIClient()

    def tearDown(self):
        get_service.cache_clear()

    def test_opportunities(self):
        response = self.client.get('/api/opportunities/', {'asset': 'USDC', 'amount': 10000})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['count'], 3)
        self.assertFalse(data['partial_data'])
        nets = [r['net_apy_after_gas'] for r in data['results']]
        self.assertEqual(nets, sorted(nets, reverse=True))
        self.assertEqual(data['results'][0]['strategy_type'], 'LP')
        for result in data['results']:
            self.assertLessEqual(result['net_apy_after_gas'], result['projected_apy'])

    def test_opportunities_low_tolerance(self):
        response = self.client.get('/api/opportunities/', {'asset': 'USDC', 'amount': 10000, 'risk_tolerance': 'Low'})
        self.assertEqual([r['asset'] for r in response.json()['results']], ['USDC-DAI'])

    def test_opportunities_validation(self):
        self.assertEqual(self.client.get('/api/opportunities/', {'asset': 'USDC', 'amount': 0}).status_code,
                         status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.get('/api/opportunities/', {'amount': 10}).status_code,
                         status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/opportunities/', {'asset': 'USDC', 'amount': 10, 'risk_tolerance': 'Yolo'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_strategies(self):
        response = self.client.get('/api/strategies/', {'capital': 50000, 'risk_tier': 'Aggressive'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual([s['risk_tier'] for s in data['results']], ['Conservative', 'Moderate', 'Aggressive'])
        for strategy in data['results']:
            self.assertAlmostEqual(strategy['allocated_percentage'], 100.0, delta=1e-6)

    def test_strategies_live(self):
        response = self.client.get('/api/strategies/', {'capital': 50000, 'risk_tier': 'Conservative', 'live': 'true'})
        conservative = response.json()['results'][0]
        usdc_dai = [a for a in conservative['allocations'] if a['asset'] == 'USDC-DAI'][0]
        self.assertEqual(usdc_dai['current_apy'], 11.0)

    def test_strategies_validation(self):
        response = self.client.get('/api/strategies/', {'capital': -5})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_portfolio_analysis(self):
        response = self.client.get(f'/api/portfolio/{ACCOUNT}/analysis/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['analytics']['total_value'], 20000)
        self.assertEqual(data['analytics']['weighted_average_apy'], 2.0)
        actions = data['rebalance_actions']
        self.assertEqual(len(actions), 1)
        self.assertEqual(actions[0]['type'], 'Migrate')
        self.assertEqual(actions[0]['from_protocol'], 'Legacy Lender')
        self.assertEqual(actions[0]['to_protocol'], 'EulerSwap')
        self.assertEqual(actions[0]['account_key'], ACCOUNT)

    def test_portfolio_target_override(self):
        response = self.client.get(f'/api/portfolio/{ACCOUNT}/analysis/', {'target_apy': 1.5})
        self.assertEqual(response.json()['rebalance_actions'], [])

    def test_unknown_account_is_empty(self):
        response = self.client.get('/api/portfolio/0xdead/analysis/')
        data = response.json()
        self.assertEqual(data['analytics']['total_value'], 0.0)
        self.assertEqual(data['rebalance_actions'], [])

    def test_auto_filter(self):
        response = self.client.post('/api/rebalance/auto-filter/', GATE_PAYLOAD, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual([a['id'] for a in data['approved']], ['keep'])
        self.assertEqual({r['action']['id']: r['check'] for r in data['rejected']},
                         {'small': 'min_yield_difference', 'banned': 'protocol_policy'})
        self.assertEqual(data['rejected_count'], 2)

    def test_auto_filter_invalid_config(self):
        payload = dict(GATE_PAYLOAD, config=dict(GATE_PAYLOAD['config'], min_yield_difference=-1))
        response = self.client.post('/api/rebalance/auto-filter/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'Invalid configuration')
        self.assertTrue(response.json()['problems'])

    def test_auto_filter_malformed_body(self):
        response = self.client.post('/api/rebalance/auto-filter/', {'actions': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_market_quality(self):
        response = self.client.get('/api/markets/quality/', {'asset': 'USDC'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['total_checks'], 6)
        self.assertEqual(self.client.get('/api/markets/quality/').status_code, status.HTTP_400_BAD_REQUEST)

    def test_forecasts(self):
        response = self.client.get('/api/forecasts/', {'assets': 'USDC, WETH,XYZ', 'timeframe': '7d'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual([f['asset'] for f in data['results']], ['USDC', 'WETH'])
        self.assertEqual(len(data['results'][0]['scenarios']), 3)
        bad = self.client.get('/api/forecasts/', {'assets': 'USDC', 'timeframe': '5y'})
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unexpected_failure_is_500(self):
        with mock.patch('yield_engine.service.YieldOptimizationService.scan_asset', side_effect=RuntimeError('boom')):
            response = self.client.get('/api/opportunities/', {'asset': 'USDC', 'amount': 10})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json()['error_type'], 'RuntimeError')


@override_settings(YIELD_ENGINE=STATIC_ENGINE_SETTINGS)
class HealthViewTests(SimpleTestCase):

    def test_health(self):
        response = APIClient().get('/api/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['engine']['sources'], ['fixture-vaults', 'fixture-pools'])
        self.assertIn('memory_usage', data['system'])

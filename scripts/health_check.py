#!/usr/bin/env python
"""
Health Check Script for the Yield Optimizer Backend

Requests the health endpoint and verifies the API reports itself healthy.
Suitable for CI/CD pipelines, container probes and external monitors.

Usage:
    python health_check.py [--url URL] [--timeout SECONDS] [--require-sources]

Options:
    --url URL          The health check URL (default: http://localhost:8000/api/health/)
    --timeout SECS     Request timeout in seconds (default: 10)
    --require-sources  Treat an engine with no configured market sources as unhealthy

Exit codes:
    0 - API is healthy
    1 - API is unhealthy or unreachable
"""

import argparse
import json
import sys
import time

import requests


def check_health(url, timeout, require_sources=False):
    """
    Check if the API is healthy by making a request to the health endpoint.

    Returns:
        tuple: (is_healthy, response_data)
    """
    try:
        start_time = time.time()
        response = requests.get(url, timeout=timeout)
        response_time = time.time() - start_time

        if response.status_code == 200:
            data = response.json()
            sources = data.get('engine', {}).get('sources', [])
            if data.get('status') == 'healthy' and (sources or not require_sources):
                return True, {
                    'status': data.get('status'),
                    'version': data.get('version'),
                    'environment': data.get('environment'),
                    'response_time': f"{response_time:.3f}s",
                    'database_status': data.get('database', {}).get('status'),
                    'market_sources': sources,
                }
            if not sources:
                return False, {
                    'status': 'unhealthy',
                    'response_time': f"{response_time:.3f}s",
                    'message': 'No market sources configured'
                }

        return False, {
            'status': 'unhealthy',
            'status_code': response.status_code,
            'response_time': f"{response_time:.3f}s",
            'message': 'API returned non-healthy status'
        }

    except requests.exceptions.RequestException as e:
        return False, {
            'status': 'unreachable',
            'message': str(e)
        }


def main():
    parser = argparse.ArgumentParser(description='Health check for the Yield Optimizer Backend API')
    parser.add_argument('--url', default='http://localhost:8000/api/health/',
                        help='Health check URL (default: http://localhost:8000/api/health/)')
    parser.add_argument('--timeout', type=int, default=10,
                        help='Request timeout in seconds (default: 10)')
    parser.add_argument('--require-sources', action='store_true',
                        help='Fail when the engine reports no market sources')

    args = parser.parse_args()

    print(f"Checking health of {args.url}...")
    is_healthy, data = check_health(args.url, args.timeout, args.require_sources)

    print(json.dumps(data, indent=2))

    if is_healthy:
        print("✅ API is healthy")
        sys.exit(0)
    else:
        print("❌ API is unhealthy or unreachable")
        sys.exit(1)


if __name__ == '__main__':
    main()

"""
Unit tests for the tenant cache when Redis is not available.
"""

from decimal import Decimal

from ealbaran.services.cache_service import TenantCache, _decode, _encode


def test_disabled_cache_always_loads(app):
    cache = TenantCache(app)
    calls = []

    def loader():
        calls.append(1)
        return {'total': 3}

    with app.app_context():
        assert cache.memoize(1, 'notes', 'dashboard_stats', loader) == {'total': 3}
        assert cache.memoize(1, 'notes', 'dashboard_stats', loader) == {'total': 3}

    assert cache.enabled is False
    assert len(calls) == 2
    assert cache.invalidate(1, 'notes') == 0


def test_keys_are_tenant_scoped(app):
    cache = TenantCache(app)
    assert cache.key(7, 'notes', 'dashboard_stats') == 'ealbaran:t7:notes:dashboard_stats'


def test_decimals_survive_encoding():
    payload = {'pending_amount': Decimal('1210.50'), 'count': 2}
    assert _decode(_encode(payload)) == payload

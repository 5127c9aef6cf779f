"""Tests for catalog app validation."""
import pytest

from kubeprovision.catalog import KNOWN_APPS, unknown_apps, validate_catalog_apps


def test_validate_known_apps():
    apps = validate_catalog_apps(['grafana', 'loki'])

    assert [app.name for app in apps] == ['grafana', 'loki']
    assert apps[0].namespace == 'observability'


def test_validate_empty():
    assert validate_catalog_apps([]) == ()


def test_duplicates_collapsed_in_order():
    apps = validate_catalog_apps(['loki', 'grafana', 'loki'])
    assert [app.name for app in apps] == ['loki', 'grafana']


def test_unknown_app_raises():
    with pytest.raises(ValueError, match="unknown catalog app\\(s\\): nope"):
        validate_catalog_apps(['grafana', 'nope'])


def test_unknown_apps():
    assert unknown_apps(['grafana', 'nope', 'also-nope']) == ['nope', 'also-nope']
    assert unknown_apps(KNOWN_APPS) == []

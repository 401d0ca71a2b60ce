"""Tests for Redis caching of catalog and clinic settings."""

import json
from unittest.mock import MagicMock

import redis

from app.core.redis_client import CacheManager, clinic_cache_key
from app.services.catalog_service import CatalogService
from app.services.clinic_settings_service import ClinicSettingsService

TEST_CLINIC_ID = "clinic-test"


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test cache miss
    mock_redis.get.return_value = None
    assert cache_manager.get_json("test_key") is None
    mock_redis.get.assert_called_once_with("test_key")

    # Test cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"title": "Laser", "duration": 30}'
    assert cache_manager.get_json("test_key") == {"title": "Laser", "duration": 30}


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("test_key", {"slotInterval": 15}) is True
    mock_redis.set.assert_called_once()

    mock_redis.reset_mock()
    assert cache_manager.set_json("test_key", {"slotInterval": 15}, ttl=300) is True
    mock_redis.setex.assert_called_once_with("test_key", 300, '{"slotInterval": 15}')


def test_cache_errors_are_misses():
    """A Redis outage never reaches the caller."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("down")
    mock_redis.setex.side_effect = redis.ConnectionError("down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("test_key") is None
    assert cache_manager.set_json("test_key", {}, ttl=60) is False


def test_clinic_cache_key_is_scoped():
    assert clinic_cache_key("north", "catalog", 7) == "clinic:north:catalog:7"
    assert clinic_cache_key("north", "settings") != clinic_cache_key("south", "settings")


async def test_catalog_lookup_is_cached(db_session, clinic):
    mock_redis = MagicMock()
    mock_redis.get.return_value = None
    service = CatalogService(db_session, CacheManager(mock_redis), TEST_CLINIC_ID)

    treatment = await service.get_treatment(clinic.laser)

    assert treatment.duration == 30
    key, _, payload = mock_redis.setex.call_args.args
    assert key == clinic_cache_key(TEST_CLINIC_ID, "catalog", clinic.laser)
    assert json.loads(payload)["title"] == "Laser"


async def test_catalog_cache_hit_skips_database(db_session, clinic):
    mock_redis = MagicMock()
    mock_redis.get.return_value = json.dumps(
        {
            "id": str(clinic.laser),
            "title": "Laser (cached)",
            "item_type": "treatment",
            "duration": 40,
            "is_overlappable": False,
        }
    )
    service = CatalogService(db_session, CacheManager(mock_redis), TEST_CLINIC_ID)

    treatment = await service.get_treatment(clinic.laser)

    assert treatment.title == "Laser (cached)"
    assert treatment.duration == 40
    mock_redis.setex.assert_not_called()


async def test_settings_cache_feeds_slot_interval(db_session, clinic):
    mock_redis = MagicMock()
    mock_redis.get.return_value = json.dumps(
        {"operating_hours": None, "slot_settings": {"slotInterval": 10}, "closed_dates": None}
    )
    service = ClinicSettingsService(db_session, CacheManager(mock_redis), TEST_CLINIC_ID)

    assert await service.get_slot_interval() == 10
    mock_redis.get.assert_called_with(clinic_cache_key(TEST_CLINIC_ID, "settings"))


async def test_services_work_without_cache(db_session, clinic):
    service = ClinicSettingsService(db_session)

    assert await service.get_slot_interval() == 15

# ===============================================================================
# VAT RATE SYNC TESTS
# ===============================================================================

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from apps.vat.config import VATConfig
from apps.vat.constants import RateSource
from apps.vat.models import VATRate
from apps.vat.rate_cache import RateCache
from apps.vat.sources import RateSourceFetchError, RateSourceParseError
from apps.vat.sync import RateChange, RateSyncer, SyncResult
from tests.vat.factories import StubSource, fetched, make_rate_cache

FETCHED_RATES = [
    fetched("DE", "standard", "19.00"),
    fetched("DE", "reduced", "7.00"),
    fetched("ES", "standard", "21.00"),
]


class RateSyncerTestCase(TestCase):
    """End-to-end sync runs against stub sources"""

    def setUp(self):
        self.cache = RateCache()

    def _syncer(self, *sources):
        return RateSyncer(rate_cache=self.cache, sources=sources, config=VATConfig(), session=Mock())

    def test_sync_success(self):
        result = self._syncer(StubSource(FETCHED_RATES)).sync()

        self.assertTrue(result.ok)
        self.assertEqual(result.source, RateSource.EC_TEDB.value)
        self.assertEqual(result.rates_loaded, 3)
        self.assertEqual(result.rates_changed, 3)
        self.assertTrue(all(change.is_new for change in result.changes))
        self.assertEqual(VATRate.objects.active().count(), 3)
        self.assertEqual(self.cache.get("DE", "reduced"), Decimal("7.00"))
        self.assertTrue(self.cache.persisted)

    def test_rows_record_source_and_validity(self):
        self._syncer(StubSource(FETCHED_RATES)).sync()

        row = VATRate.objects.get(country_code="ES", rate_type="standard")
        self.assertEqual(row.source, RateSource.EC_TEDB.value)
        self.assertEqual(row.valid_from, timezone.now().date())
        self.assertIsNone(row.valid_to)
        self.assertEqual(row.description, "standard rate for ES")

    def test_fallback_source_used_when_primary_fails(self):
        primary = StubSource(error=RateSourceFetchError("TEDB down"))
        fallback = StubSource(FETCHED_RATES, name=RateSource.EUVATRATES_JSON)

        result = self._syncer(primary, fallback).sync()

        self.assertTrue(result.ok)
        self.assertEqual(result.source, RateSource.EUVATRATES_JSON.value)
        self.assertEqual(primary.calls, 1)
        self.assertEqual(fallback.calls, 1)
        self.assertEqual(VATRate.objects.filter(source=RateSource.EUVATRATES_JSON.value).count(), 3)

    def test_fallback_not_called_when_primary_succeeds(self):
        fallback = StubSource(FETCHED_RATES, name=RateSource.EUVATRATES_JSON)

        self._syncer(StubSource(FETCHED_RATES), fallback).sync()

        self.assertEqual(fallback.calls, 0)

    def test_unexpected_source_exception_is_contained(self):
        primary = StubSource(error=RuntimeError("boom"))
        fallback = StubSource(FETCHED_RATES, name=RateSource.EUVATRATES_JSON)

        result = self._syncer(primary, fallback).sync()

        self.assertTrue(result.ok)
        self.assertEqual(result.source, RateSource.EUVATRATES_JSON.value)

    def test_all_sources_fail_warms_cache_from_database(self):
        VATRate.objects.create(
            country_code="FR", rate_type="standard", rate=Decimal("20.00"), valid_from=date(2024, 1, 1)
        )
        syncer = self._syncer(
            StubSource(error=RateSourceFetchError("TEDB down")),
            StubSource(error=RateSourceParseError("bad json"), name=RateSource.EUVATRATES_JSON),
        )

        result = syncer.sync()

        self.assertFalse(result.ok)
        self.assertIn("All VAT rate sources failed", result.error)
        self.assertIn("TEDB down", result.error)
        self.assertIn("bad json", result.error)
        self.assertEqual(result.source, RateSource.CACHE.value)
        self.assertEqual(result.rates_loaded, 1)
        self.assertEqual(self.cache.get("FR", "standard"), Decimal("20.00"))

    def test_all_sources_fail_with_empty_database_keeps_cache(self):
        self.cache = make_rate_cache()
        syncer = self._syncer(StubSource(error=RateSourceFetchError("TEDB down")))

        result = syncer.sync()

        self.assertFalse(result.ok)
        self.assertEqual(result.source, "")
        self.assertEqual(self.cache.get("ES", "standard"), Decimal("21.00"))

    def test_save_failure_still_serves_fetched_rates(self):
        syncer = self._syncer(StubSource(FETCHED_RATES))

        with patch.object(syncer, "save_rates", side_effect=DatabaseError("disk full")):
            result = syncer.sync()

        self.assertFalse(result.ok)
        self.assertIn("Failed to persist", result.error)
        self.assertEqual(result.rates_loaded, 3)
        self.assertEqual(self.cache.get("DE", "standard"), Decimal("19.00"))
        self.assertEqual(VATRate.objects.count(), 0)
        self.assertFalse(self.cache.persisted)

    def test_cache_reload_failure_is_reported(self):
        syncer = self._syncer(StubSource(FETCHED_RATES))

        with patch.object(syncer, "load_active_rates", side_effect=DatabaseError("connection lost")):
            result = syncer.sync()

        self.assertFalse(result.ok)
        self.assertIn("Failed to reload rate cache", result.error)
        self.assertEqual(result.rates_changed, 3)

    def test_default_session_has_user_agent(self):
        syncer = RateSyncer(rate_cache=self.cache, sources=[], config=VATConfig())
        self.assertIsInstance(syncer.session, requests.Session)
        self.assertIn("VATCore", syncer.session.headers["User-Agent"])


class SaveRatesTestCase(TestCase):
    """Persisting fetched rates with history"""

    def setUp(self):
        self.syncer = RateSyncer(rate_cache=RateCache(), sources=[], config=VATConfig(), session=Mock())

    def test_saving_identical_rates_twice_changes_nothing(self):
        first = self.syncer.save_rates(FETCHED_RATES, RateSource.EC_TEDB.value)
        second = self.syncer.save_rates(FETCHED_RATES, RateSource.EC_TEDB.value)

        self.assertEqual(len(first), 3)
        self.assertEqual(second, [])
        self.assertEqual(VATRate.objects.count(), 3)

    def test_unchanged_rates_only_touch_synced_at(self):
        self.syncer.save_rates(FETCHED_RATES, RateSource.EC_TEDB.value)
        VATRate.objects.update(synced_at=timezone.now() - timedelta(days=2))

        self.syncer.save_rates(FETCHED_RATES, RateSource.EC_TEDB.value)

        stale = timezone.now() - timedelta(days=1)
        self.assertFalse(VATRate.objects.filter(synced_at__lt=stale).exists())

    def test_changed_rate_expires_old_row_and_inserts_new(self):
        self.syncer.save_rates([fetched("DE", "standard", "19.00")], RateSource.EC_TEDB.value)

        changes = self.syncer.save_rates([fetched("DE", "standard", "20.00")], RateSource.EC_TEDB.value)

        self.assertEqual(changes, [RateChange("DE", "standard", Decimal("19.00"), Decimal("20.00"))])
        rows = VATRate.objects.filter(country_code="DE", rate_type="standard")
        self.assertEqual(rows.count(), 2)

        active = rows.active().get()
        self.assertEqual(active.rate, Decimal("20.00"))
        self.assertEqual(active.valid_from, timezone.now().date())

        expired = rows.filter(valid_to__isnull=False).get()
        self.assertEqual(expired.rate, Decimal("19.00"))
        self.assertEqual(expired.valid_to, timezone.now().date())

    def test_rates_missing_from_source_stay_active(self):
        self.syncer.save_rates(FETCHED_RATES, RateSource.EC_TEDB.value)
        self.syncer.save_rates([fetched("DE", "standard", "19.00")], RateSource.EC_TEDB.value)

        self.assertEqual(VATRate.objects.active().count(), 3)

    def test_detect_changes_writes_nothing(self):
        self.syncer.save_rates([fetched("DE", "standard", "19.00")], RateSource.EC_TEDB.value)

        changes = self.syncer.detect_changes(
            [fetched("DE", "standard", "20.00"), fetched("DE", "reduced", "7.00")]
        )

        self.assertEqual(
            changes,
            [
                RateChange("DE", "standard", Decimal("19.00"), Decimal("20.00")),
                RateChange("DE", "reduced", None, Decimal("7.00")),
            ],
        )
        self.assertEqual(VATRate.objects.count(), 1)

    def test_load_active_rates(self):
        self.syncer.save_rates(FETCHED_RATES, RateSource.EC_TEDB.value)
        self.syncer.save_rates([fetched("DE", "standard", "20.00")], RateSource.EC_TEDB.value)

        loaded = self.syncer.load_active_rates()

        self.assertEqual(loaded, 3)
        self.assertEqual(self.syncer.rate_cache.get("DE", "standard"), Decimal("20.00"))


class SyncResultTestCase(TestCase):
    def test_rate_change_str(self):
        self.assertEqual(str(RateChange("DE", "standard", None, Decimal("19.00"))), "DE standard: new 19.00%")
        self.assertEqual(
            str(RateChange("DE", "standard", Decimal("19.00"), Decimal("20.00"))),
            "DE standard: 19.00% -> 20.00%",
        )

    def test_to_dict(self):
        result = SyncResult(
            source="ec_tedb",
            rates_loaded=2,
            rates_changed=1,
            changes=[RateChange("DE", "standard", None, Decimal("19.00"))],
        )
        data = result.to_dict()

        self.assertEqual(data["source"], "ec_tedb")
        self.assertEqual(data["changes"], ["DE standard: new 19.00%"])
        self.assertEqual(data["error"], "")
        self.assertIsInstance(data["synced_at"], str)
        self.assertTrue(result.ok)

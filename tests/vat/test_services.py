# ===============================================================================
# VAT CALCULATION SERVICE TESTS
# ===============================================================================

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from apps.store.models import StoreSettings
from apps.vat.config import VATConfig
from apps.vat.models import ProductVATOverride, VATCategory, VATRate
from apps.vat.rate_cache import RateCache
from apps.vat.services import VATCalculationResult, VATInput, VATService, VATSummary
from apps.vat.sync import RateSyncer
from apps.vat.vies import VIESClient
from tests.vat.factories import StubSource, fetched, make_rate, make_rate_cache, make_vies_entry, offline_session


class VATServiceTestCase(TestCase):
    """Base fixture: Spanish store, gross prices, ES/DE/DK rates loaded"""

    def setUp(self):
        self.store = StoreSettings.load()
        self.store.vat_enabled = True
        self.store.vat_country_code = "ES"
        self.store.vat_prices_include_vat = True
        self.store.vat_default_category = "standard"
        self.store.vat_b2b_reverse_charge_enabled = True
        self.store.save()

        self.config = VATConfig(vies_url="http://vies.invalid/checkVatService")
        self.rate_cache = make_rate_cache()
        self.service = VATService(
            rate_cache=self.rate_cache,
            vies_client=VIESClient(self.config, session=offline_session()),
            config=self.config,
        )

    def calculate(self, price, country, **kwargs):
        return self.service.calculate_for_product(VATInput(price=Decimal(price), destination_country=country, **kwargs))

    def category_id(self, name):
        return VATCategory.objects.get(name=name).pk


class BasicCalculationTestCase(VATServiceTestCase):
    def test_vat_disabled(self):
        self.store.vat_enabled = False
        self.store.save()

        result = self.calculate("121.00", "ES")

        self.assertEqual(result.rate, Decimal("0.00"))
        self.assertEqual(result.vat_amount, Decimal("0.00"))
        self.assertEqual(result.net_price, Decimal("121.00"))
        self.assertEqual(result.gross_price, Decimal("121.00"))
        self.assertEqual(result.exempt_reason, "vat_disabled")
        self.assertTrue(result.is_exempt)

    def test_inclusive_price_spain(self):
        result = self.calculate("121.00", "ES")

        self.assertEqual(result.rate, Decimal("21.00"))
        self.assertEqual(result.rate_type, "standard")
        self.assertEqual(result.net_price, Decimal("100.00"))
        self.assertEqual(result.vat_amount, Decimal("21.00"))
        self.assertEqual(result.gross_price, Decimal("121.00"))
        self.assertEqual(result.exempt_reason, "")
        self.assertFalse(result.reverse_charge)

    def test_inclusive_price_rounds_half_up(self):
        result = self.calculate("10.00", "ES")

        self.assertEqual(result.net_price, Decimal("8.26"))
        self.assertEqual(result.vat_amount, Decimal("1.74"))
        self.assertEqual(result.net_price + result.vat_amount, result.gross_price)

    def test_exclusive_price(self):
        self.store.vat_prices_include_vat = False
        self.store.save()

        result = self.calculate("100.00", "ES")

        self.assertEqual(result.net_price, Decimal("100.00"))
        self.assertEqual(result.vat_amount, Decimal("21.00"))
        self.assertEqual(result.gross_price, Decimal("121.00"))

    def test_destination_country_rate_is_used(self):
        result = self.calculate("119.00", "DE")

        self.assertEqual(result.rate, Decimal("19.00"))
        self.assertEqual(result.net_price, Decimal("100.00"))
        self.assertEqual(result.country_code, "DE")

    def test_lowercase_destination(self):
        result = self.calculate("119.00", "de")

        self.assertEqual(result.country_code, "DE")
        self.assertEqual(result.rate, Decimal("19.00"))

    def test_country_without_rates_charges_no_vat(self):
        result = self.calculate("50.00", "US")

        self.assertEqual(result.rate, Decimal("0.00"))
        self.assertEqual(result.vat_amount, Decimal("0.00"))
        self.assertEqual(result.gross_price, Decimal("50.00"))
        self.assertEqual(result.exempt_reason, "")

    def test_quantity_multiplies_line_totals(self):
        result = self.calculate("121.00", "ES", quantity=3)

        self.assertEqual(result.quantity, 3)
        self.assertEqual(result.vat_amount, Decimal("21.00"))
        self.assertEqual(result.line_net_total, Decimal("300.00"))
        self.assertEqual(result.line_vat_total, Decimal("63.00"))
        self.assertEqual(result.line_gross_total, Decimal("363.00"))

    def test_non_positive_quantity_clamped_to_one(self):
        for quantity in (0, -3):
            with self.subTest(quantity=quantity):
                result = self.calculate("121.00", "ES", quantity=quantity)
                self.assertEqual(result.quantity, 1)
                self.assertEqual(result.line_gross_total, Decimal("121.00"))

    def test_to_dict(self):
        data = self.calculate("121.00", "ES").to_dict()

        self.assertEqual(data["rate"], "21.00")
        self.assertEqual(data["vat_amount"], "21.00")
        self.assertEqual(data["net_price"], "100.00")
        self.assertEqual(data["line_gross_total"], "121.00")
        self.assertFalse(data["reverse_charge"])
        self.assertFalse(data["rate_fallback"])


class CategoryResolutionTestCase(VATServiceTestCase):
    """Override > product category > store default > standard"""

    def test_product_category(self):
        result = self.calculate("110.00", "ES", product_vat_category_id=self.category_id("reduced"))

        self.assertEqual(result.rate, Decimal("10.00"))
        self.assertEqual(result.rate_type, "reduced")
        self.assertEqual(result.net_price, Decimal("100.00"))

    def test_override_beats_product_category(self):
        product_id = uuid.uuid4()
        ProductVATOverride.objects.create(
            product_id=product_id, country_code="ES", vat_category=VATCategory.objects.get(name="super_reduced")
        )

        result = self.calculate(
            "104.00", "ES", product_id=product_id, product_vat_category_id=self.category_id("reduced")
        )

        self.assertEqual(result.rate, Decimal("4.00"))
        self.assertEqual(result.rate_type, "super_reduced")

    def test_override_for_other_country_is_ignored(self):
        product_id = uuid.uuid4()
        ProductVATOverride.objects.create(
            product_id=product_id, country_code="FR", vat_category=VATCategory.objects.get(name="super_reduced")
        )

        result = self.calculate(
            "110.00", "ES", product_id=product_id, product_vat_category_id=self.category_id("reduced")
        )

        self.assertEqual(result.rate_type, "reduced")

    def test_store_default_category(self):
        self.store.vat_default_category = "reduced"
        self.store.save()

        result = self.calculate("110.00", "ES")

        self.assertEqual(result.rate, Decimal("10.00"))

    def test_unknown_store_default_category_uses_standard(self):
        self.store.vat_default_category = "luxury"
        self.store.save()

        result = self.calculate("121.00", "ES")

        self.assertEqual(result.rate_type, "standard")
        self.assertEqual(result.rate, Decimal("21.00"))

    def test_unknown_product_category_falls_through(self):
        self.store.vat_default_category = "reduced"
        self.store.save()

        result = self.calculate("110.00", "ES", product_vat_category_id=uuid.uuid4())

        self.assertEqual(result.rate_type, "reduced")

    def test_missing_category_rate_falls_back_to_standard(self):
        result = self.calculate("125.00", "DK", product_vat_category_id=self.category_id("reduced"))

        self.assertEqual(result.rate, Decimal("25.00"))
        self.assertEqual(result.rate_type, "standard")
        self.assertTrue(result.rate_fallback)
        self.assertEqual(result.net_price, Decimal("100.00"))

    def test_zero_category_without_rate_falls_back_to_standard(self):
        result = self.calculate("121.00", "ES", product_vat_category_id=self.category_id("zero"))

        self.assertEqual(result.rate, Decimal("21.00"))
        self.assertEqual(result.rate_type, "standard")
        self.assertTrue(result.rate_fallback)
        self.assertEqual(result.net_price, Decimal("100.00"))
        self.assertEqual(result.vat_amount, Decimal("21.00"))

    def test_zero_category_uses_loaded_zero_rate(self):
        self.rate_cache.load([make_rate("ES", "standard", "21.00"), make_rate("ES", "zero", "0.00")])

        result = self.calculate("100.00", "ES", product_vat_category_id=self.category_id("zero"))

        self.assertEqual(result.rate, Decimal("0.00"))
        self.assertEqual(result.rate_type, "zero")
        self.assertEqual(result.vat_amount, Decimal("0.00"))
        self.assertEqual(result.gross_price, Decimal("100.00"))
        self.assertFalse(result.rate_fallback)


class ReverseChargeTestCase(VATServiceTestCase):
    """Cross-border B2B with a cached VIES answer"""

    def test_cross_border_valid_vat_number(self):
        make_vies_entry("DE123456789", company_name="Muster GmbH", company_address="Berlin")

        result = self.calculate("121.00", "DE", customer_vat_number="de 123456789")

        self.assertTrue(result.reverse_charge)
        self.assertEqual(result.exempt_reason, "reverse_charge")
        self.assertEqual(result.rate, Decimal("0.00"))
        self.assertEqual(result.vat_amount, Decimal("0.00"))
        # Home (ES 21%) VAT stripped from the gross catalog price
        self.assertEqual(result.net_price, Decimal("100.00"))
        self.assertEqual(result.gross_price, Decimal("100.00"))
        self.assertEqual(result.customer_vat_number, "DE123456789")
        self.assertEqual(result.company_name, "Muster GmbH")

    def test_reverse_charge_with_net_prices(self):
        self.store.vat_prices_include_vat = False
        self.store.save()
        make_vies_entry("DE123456789")

        result = self.calculate("100.00", "DE", customer_vat_number="DE123456789")

        self.assertTrue(result.reverse_charge)
        self.assertEqual(result.net_price, Decimal("100.00"))

    def test_domestic_b2b_is_taxed(self):
        make_vies_entry("ESB12345678")

        result = self.calculate("121.00", "ES", customer_vat_number="ESB12345678")

        self.assertFalse(result.reverse_charge)
        self.assertEqual(result.rate, Decimal("21.00"))

    def test_expired_vies_entry_is_taxed(self):
        make_vies_entry("DE123456789", expires_in=timedelta(hours=-1))

        result = self.calculate("119.00", "DE", customer_vat_number="DE123456789")

        self.assertFalse(result.reverse_charge)
        self.assertEqual(result.rate, Decimal("19.00"))

    def test_invalid_vies_entry_is_taxed(self):
        make_vies_entry("DE123456789", is_valid=False)

        result = self.calculate("119.00", "DE", customer_vat_number="DE123456789")

        self.assertFalse(result.reverse_charge)
        self.assertEqual(result.vat_amount, Decimal("19.00"))

    def test_unknown_vat_number_is_taxed(self):
        result = self.calculate("119.00", "DE", customer_vat_number="DE999999999")
        self.assertFalse(result.reverse_charge)

    def test_reverse_charge_disabled(self):
        self.store.vat_b2b_reverse_charge_enabled = False
        self.store.save()
        make_vies_entry("DE123456789")

        result = self.calculate("119.00", "DE", customer_vat_number="DE123456789")

        self.assertFalse(result.reverse_charge)
        self.assertEqual(result.rate, Decimal("19.00"))

    def test_no_vat_number(self):
        make_vies_entry("DE123456789")

        result = self.calculate("119.00", "DE")

        self.assertFalse(result.reverse_charge)

    def test_no_home_country_is_taxed(self):
        self.store.vat_country_code = ""
        self.store.save()
        make_vies_entry("DE123456789")

        result = self.calculate("119.00", "DE", customer_vat_number="DE123456789")

        self.assertFalse(result.reverse_charge)

    def test_vies_cache_failure_is_taxed(self):
        make_vies_entry("DE123456789")

        with patch.object(self.service.vies_client, "get_cached", side_effect=DatabaseError("locked")):
            result = self.calculate("119.00", "DE", customer_vat_number="DE123456789")

        self.assertFalse(result.reverse_charge)
        self.assertEqual(result.rate, Decimal("19.00"))


class CartCalculationTestCase(VATServiceTestCase):
    def test_cart_totals(self):
        self.store.vat_prices_include_vat = False
        self.store.save()
        items = [
            VATInput(price=Decimal("100.00"), destination_country="DE", quantity=2),
            VATInput(
                price=Decimal("50.00"),
                destination_country="DE",
                product_vat_category_id=self.category_id("reduced"),
                quantity=3,
            ),
        ]

        results, summary = self.service.calculate_for_cart(items)

        self.assertEqual(len(results), 2)
        self.assertEqual(summary.total_net, Decimal("350.00"))
        self.assertEqual(summary.total_vat, Decimal("48.50"))
        self.assertEqual(summary.total_gross, Decimal("398.50"))
        self.assertEqual(summary.total_net, sum(r.line_net_total for r in results))

    def test_cart_mixed_countries_and_categories(self):
        self.store.vat_prices_include_vat = False
        self.store.save()
        items = [
            VATInput(price=Decimal("75.00"), destination_country="ES", quantity=2),
            VATInput(
                price=Decimal("100.00"),
                destination_country="ES",
                product_vat_category_id=self.category_id("reduced"),
            ),
            VATInput(
                price=Decimal("100.00"),
                destination_country="DE",
                product_vat_category_id=self.category_id("reduced"),
            ),
        ]

        results, summary = self.service.calculate_for_cart(items)

        self.assertEqual([r.rate for r in results], [Decimal("21.00"), Decimal("10.00"), Decimal("7.00")])
        self.assertEqual(summary.total_net, Decimal("350.00"))
        self.assertEqual(summary.total_vat, Decimal("48.50"))
        self.assertEqual(summary.total_gross, Decimal("398.50"))
        self.assertEqual(summary.to_dict(), {"total_net": "350.00", "total_vat": "48.50", "total_gross": "398.50"})

    def test_empty_cart(self):
        results, summary = self.service.calculate_for_cart([])

        self.assertEqual(results, [])
        self.assertEqual(summary.total_gross, Decimal("0.00"))

    def test_summary_from_results(self):
        result = VATCalculationResult(
            rate=Decimal("21.00"),
            rate_type="standard",
            vat_amount=Decimal("2.10"),
            net_price=Decimal("10.00"),
            gross_price=Decimal("12.10"),
            country_code="ES",
            quantity=2,
        )
        summary = VATSummary.from_results([result, result])

        self.assertEqual(summary.total_net, Decimal("40.00"))
        self.assertEqual(summary.total_vat, Decimal("8.40"))


class RateCacheRefreshTestCase(TestCase):
    """Processes that never ran a sync read rates from the database"""

    def setUp(self):
        store = StoreSettings.load()
        store.vat_enabled = True
        store.vat_country_code = "ES"
        store.save()
        VATRate.objects.create(country_code="FR", rate_type="standard", rate=Decimal("20.00"), valid_from=date(2024, 1, 1))

    def _service(self, rate_cache, config):
        return VATService(rate_cache=rate_cache, vies_client=VIESClient(config, session=offline_session()), config=config)

    def test_empty_cache_loads_from_database(self):
        cache = RateCache()
        service = self._service(cache, VATConfig())

        result = service.calculate_for_product(VATInput(price=Decimal("120.00"), destination_country="FR"))

        self.assertEqual(result.rate, Decimal("20.00"))
        self.assertEqual(result.net_price, Decimal("100.00"))
        self.assertIsNotNone(cache.loaded_at)

    def test_stale_cache_is_reloaded(self):
        cache = make_rate_cache()
        service = self._service(cache, VATConfig(rate_cache_max_age=timedelta(0)))

        result = service.calculate_for_product(VATInput(price=Decimal("120.00"), destination_country="FR"))

        self.assertEqual(result.rate, Decimal("20.00"))
        self.assertIsNone(cache.get("ES", "standard"))

    def test_fresh_cache_is_not_reloaded(self):
        cache = make_rate_cache()
        service = self._service(cache, VATConfig())

        result = service.calculate_for_product(VATInput(price=Decimal("121.00"), destination_country="ES"))

        self.assertEqual(result.rate, Decimal("21.00"))
        self.assertIsNone(cache.get("FR", "standard"))

    def test_empty_database_keeps_cached_rates(self):
        VATRate.objects.all().delete()
        cache = make_rate_cache()
        service = self._service(cache, VATConfig(rate_cache_max_age=timedelta(0)))

        result = service.calculate_for_product(VATInput(price=Decimal("121.00"), destination_country="ES"))

        self.assertEqual(result.rate, Decimal("21.00"))
        self.assertEqual(result.vat_amount, Decimal("21.00"))
        self.assertEqual(cache.get("DE", "standard"), Decimal("19.00"))

    def test_unsaved_sync_rates_survive_stale_check(self):
        cache = RateCache()
        config = VATConfig(rate_cache_max_age=timedelta(0))
        syncer = RateSyncer(
            rate_cache=cache,
            sources=[StubSource(rates=[fetched("DE", "standard", "19.00")])],
            config=config,
            session=offline_session(),
        )
        with patch.object(RateSyncer, "save_rates", side_effect=DatabaseError("disk full")):
            sync_result = syncer.sync()

        self.assertFalse(sync_result.ok)
        self.assertFalse(cache.persisted)

        service = self._service(cache, config)
        result = service.calculate_for_product(VATInput(price=Decimal("119.00"), destination_country="DE"))

        self.assertEqual(result.rate, Decimal("19.00"))
        self.assertEqual(result.vat_amount, Decimal("19.00"))
        self.assertEqual(cache.get("DE", "standard"), Decimal("19.00"))
        self.assertIsNone(cache.get("FR", "standard"))

"""Tests for the SQLAlchemy sales repository."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from castsales.models import (
    Attendance,
    CastBackRate,
    CompensationSetting,
    Costume,
    Product,
    SpecialWageDay,
    SystemSetting,
    WageStatus,
)
from castsales.services.sales.repository import SalesDataError, SqlAlchemySalesRepository


@pytest.fixture
def repository(db_session):
    return SqlAlchemySalesRepository(db_session)


class TestStoreConfiguration:

    def test_rates_default_to_environment(self, repository, test_store):
        rates = repository.get_store_rates(test_store.id)
        assert rates.tax_rate == pytest.approx(0.10)
        assert rates.service_rate == 0

    def test_rates_from_system_settings(self, db_session, repository, test_store):
        db_session.add_all([
            SystemSetting(store_id=test_store.id, setting_key="tax_rate", setting_value="8"),
            SystemSetting(store_id=test_store.id, setting_key="service_fee_rate", setting_value="20"),
        ])
        db_session.commit()
        rates = repository.get_store_rates(test_store.id)
        assert rates.tax_rate == pytest.approx(0.08)
        assert rates.service_rate == pytest.approx(0.20)

    def test_malformed_rate(self, db_session, repository, test_store):
        db_session.add(SystemSetting(store_id=test_store.id, setting_key="tax_rate", setting_value="ten"))
        db_session.commit()
        with pytest.raises(SalesDataError):
            repository.get_store_rates(test_store.id)

    def test_cutoff_hour(self, db_session, repository, test_store):
        assert repository.get_business_day_cutoff(test_store.id) == 6
        db_session.add(SystemSetting(store_id=test_store.id, setting_key="business_day_start_hour", setting_value="5"))
        db_session.commit()
        assert repository.get_business_day_cutoff(test_store.id) == 5

    def test_invalid_cutoff_hour_falls_back(self, db_session, repository, test_store):
        db_session.add(SystemSetting(store_id=test_store.id, setting_key="business_day_start_hour", setting_value="late"))
        db_session.commit()
        assert repository.get_business_day_cutoff(test_store.id) == 6

    def test_missing_sales_settings_use_defaults(self, repository, test_store):
        settings = repository.get_sales_settings(test_store.id)
        assert settings.store_id == test_store.id
        assert settings.item.help_distribution_method == "all_to_nomination"
        assert settings.item.rounding_position == 100


class TestDailyInputs:

    def test_loads_everything_for_the_day(self, db_session, repository, test_store, test_casts, make_order, business_date):
        aoi, hana, rin = test_casts
        make_order("Aoi", [("Champagne", 11000, ["Aoi", "Hana"], "bottle")])
        status = WageStatus(store_id=test_store.id, name="Regular", hourly_wage=2000)
        costume = Costume(store_id=test_store.id, name="Kimono", wage_adjustment=300)
        db_session.add_all([status, costume])
        db_session.commit()
        db_session.add_all([
            Product(store_id=test_store.id, name="Table charge", needs_cast=False),
            Product(store_id=test_store.id, name="Champagne", category="bottle"),
            CastBackRate(store_id=test_store.id, cast_id=aoi.id, self_back_ratio=Decimal("20")),
            CastBackRate(store_id=test_store.id, cast_id=hana.id, self_back_ratio=Decimal("10"), is_active=False),
            Attendance(
                store_id=test_store.id, date=business_date, cast_name="Rin", costume_id=costume.id,
                check_in_datetime=datetime(2026, 10, 1, 20, 0), check_out_datetime=datetime(2026, 10, 2, 1, 0),
            ),
            SpecialWageDay(store_id=test_store.id, date=business_date, wage_adjustment=500),
            CompensationSetting(
                store_id=test_store.id, cast_id=rin.id, status_id=status.id, help_back_calculation_method="full_amount",
            ),
        ])
        db_session.commit()

        inputs = repository.load_daily_inputs(test_store.id, business_date)

        assert [o.id for o in inputs.orders] == ["order-1"]
        assert inputs.orders[0].items[0].cast_names == ["Aoi", "Hana"]
        assert inputs.orders[0].items[0].category == "bottle"
        assert [c.name for c in inputs.casts] == ["Aoi", "Hana", "Rin"]
        assert inputs.product_needs_cast == {"Table charge": False, "Champagne": True}
        assert [r.cast_id for r in inputs.back_rates] == [aoi.id]
        assert inputs.back_rates[0].help_back_ratio is None
        assert inputs.attendance[0].cast_name == "Rin"
        assert inputs.wages.wage_statuses == {status.id: 2000}
        assert inputs.wages.costume_bonuses == {costume.id: 300}
        assert inputs.wages.special_day_bonus == 500
        assert inputs.wages.compensations[0].cast_id == rin.id
        assert inputs.wages.compensations[0].help_back_calculation_method == "full_amount"
        assert inputs.finalized_cast_ids == set()

    def test_special_day_only_applies_on_its_date(self, db_session, repository, test_store):
        db_session.add(SpecialWageDay(store_id=test_store.id, date=date(2026, 10, 2), wage_adjustment=500))
        db_session.commit()
        assert repository.get_wage_tables(test_store.id, date(2026, 10, 1)).special_day_bonus == 0

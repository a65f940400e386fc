"""Tests for decimal helpers and the costing engine."""

import pytest
from decimal import Decimal

from ordaro.core.numeric import optional_cost, quantize_cost, quantize_margin, quantize_qty, to_decimal
from ordaro.services.costing_service import CostingEngine, weighted_average_cost


class TestDecimalHelpers:
    def test_floats_are_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(1.5)

    def test_bools_are_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(True)

    def test_strings_and_ints_convert(self):
        assert to_decimal("2.50") == Decimal("2.50")
        assert to_decimal(3) == Decimal("3")

    def test_invalid_string_raises_value_error(self):
        with pytest.raises(ValueError):
            to_decimal("twelve")

    def test_quantize_rounds_half_up_to_four_places(self):
        assert quantize_cost(Decimal("1.66665")) == Decimal("1.6667")
        assert quantize_qty("0.00004") == Decimal("0.0000")
        assert quantize_margin(Decimal("0.70")) == Decimal("0.7000")

    def test_optional_cost_keeps_none(self):
        assert optional_cost(None) is None
        assert optional_cost(Decimal("2")) == Decimal("2.0000")


class TestWeightedAverage:
    def test_first_purchase_uses_its_own_unit_cost(self):
        assert weighted_average_cost(Decimal("0"), None, Decimal("4"), Decimal("10")) == Decimal("2.5000")

    def test_blends_existing_stock(self):
        # 5 @ 1.00 + 10 @ 2.00 -> 25 / 15
        result = weighted_average_cost(Decimal("5"), Decimal("1.00"), Decimal("10"), Decimal("20.00"))
        assert result == Decimal("1.6667")

    def test_missing_average_with_stock_starts_fresh(self):
        # Stock that arrived only through adjustments has no average to blend
        assert weighted_average_cost(Decimal("3"), None, Decimal("2"), Decimal("5")) == Decimal("2.5000")

    def test_free_goods_pull_average_down(self):
        result = weighted_average_cost(Decimal("10"), Decimal("2"), Decimal("10"), Decimal("0"))
        assert result == Decimal("1.0000")


class TestCostingEngine:
    def test_reconcile_recomputes_from_open_batches(self, db_session, inventory, make_ingredient):
        flour = make_ingredient("Flour")
        inventory.record_stock_entry(flour.id, "10", "10")
        inventory.record_stock_entry(flour.id, "10", "30")
        inventory.deduct_stock(flour.id, "10")

        db_session.expire_all()
        flour = db_session.get(type(flour), flour.id)
        # Deduction leaves the average alone; the open batch is now 10 @ 3
        assert flour.average_unit_cost == Decimal("2")
        assert flour.fifo_unit_cost == Decimal("3")

        changed = CostingEngine(db_session).reconcile_from_batches(flour)
        assert changed is True
        assert flour.average_unit_cost == Decimal("3.0000")
        assert flour.fifo_unit_cost == Decimal("3")
        db_session.rollback()

    def test_reconcile_reports_no_change_when_in_step(self, db_session, inventory, make_ingredient):
        sugar = make_ingredient("Sugar")
        inventory.record_stock_entry(sugar.id, "4", "10")

        db_session.expire_all()
        sugar = db_session.get(type(sugar), sugar.id)
        assert CostingEngine(db_session).reconcile_from_batches(sugar) is False
        db_session.rollback()

    def test_reconcile_keeps_average_once_stock_is_gone(self, db_session, inventory, make_ingredient):
        salt = make_ingredient("Salt")
        inventory.record_stock_entry(salt.id, "5", "10")
        inventory.deduct_stock(salt.id, "5")

        db_session.expire_all()
        salt = db_session.get(type(salt), salt.id)
        assert salt.fifo_unit_cost is None
        assert CostingEngine(db_session).reconcile_from_batches(salt) is False
        assert salt.average_unit_cost == Decimal("2")
        db_session.rollback()

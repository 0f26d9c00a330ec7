# tests/test_charges.py

"""
Tests for charge reconciliation.
"""

import pytest

from app.models import InvoiceCharge, SystemCharge, RateTable
from app.core.charges import (
    reconcile_charges,
    score_charge_pair,
    assign_charge_code,
    is_tax_charge,
)
from app.core.currency import identity_rates


# ============================================
# Test Data
# ============================================

def make_system_charge(
    code: str,
    name: str,
    actual_cost: float = 0.0,
    actual_charge: float = 0.0,
    currency: str = "CAD",
) -> SystemCharge:
    return SystemCharge(
        code=code,
        name=name,
        currency=currency,
        quoted_cost=actual_cost,
        quoted_charge=actual_charge,
        actual_cost=actual_cost,
        actual_charge=actual_charge,
    )


def make_invoice_charge(name: str, amount: float, code: str = None, currency: str = "CAD") -> InvoiceCharge:
    return InvoiceCharge(code=code, name=name, amount=amount, currency=currency)


USD_RATES = RateTable(base_currency="CAD", rates={"USD": 0.75}, provider="test")


# ============================================
# Code Assignment Tests
# ============================================

class TestChargeCodes:
    """Semantic codes for invoice charges without one."""

    def test_keyword_codes(self):
        assert assign_charge_code("Fuel Surcharge") == "FSC"
        assert assign_charge_code("Customs Brokerage") == "CUS"
        assert assign_charge_code("Liftgate Delivery") == "ACC"
        assert assign_charge_code("Cargo Insurance") == "INS"
        assert assign_charge_code("Dimensional Weight Adj") == "WGT"
        assert assign_charge_code("Detention") == "DET"
        assert assign_charge_code("Linehaul") == "FRT"

    def test_tax_keyword_becomes_code(self):
        assert assign_charge_code("GST 5%") == "GST"
        assert assign_charge_code("Ontario HST") == "HST"

    def test_default_is_freight(self):
        assert assign_charge_code("Miscellaneous") == "FRT"
        assert assign_charge_code(None) == "FRT"

    def test_is_tax_charge(self):
        assert is_tax_charge("QST", "Quebec sales tax")
        assert is_tax_charge(None, "Sales Tax")
        assert not is_tax_charge("FSC", "Fuel Surcharge")


# ============================================
# Pair Scoring Tests
# ============================================

class TestPairScoring:
    """How invoice charges are scored against system charges."""

    def test_code_and_name(self):
        """Same code and same name: 50 + 40."""
        system = make_system_charge("FRT", "Freight")
        invoice = make_invoice_charge("Freight", 100, code="FRT")

        assert score_charge_pair(system, invoice) == 90

    def test_keyword_family(self):
        """Shared fuel keywords score 25 on top of the code match."""
        system = make_system_charge("FSC", "Fuel Surcharge")
        invoice = make_invoice_charge("Fuel", 20, code="FSC")

        assert score_charge_pair(system, invoice) == 75

    def test_keyword_score_capped(self):
        """Keyword families stack up to 35 points."""
        system = make_system_charge("X", "freight fuel")
        invoice = make_invoice_charge("freight fuel", 20, code="Y")

        # names equal, so the exact-name bonus applies instead
        assert score_charge_pair(system, invoice) == 40

        invoice = make_invoice_charge("base fuel surcharge", 20, code="Y")
        assert score_charge_pair(system, invoice) == 35

    def test_unknown_system_name_uses_code(self):
        """A system charge named 'Unknown Charge' is compared by its code."""
        system = make_system_charge("Liftgate", "Unknown Charge")
        invoice = make_invoice_charge("liftgate", 40, code="ACC")

        assert score_charge_pair(system, invoice) == 40

    def test_unrelated(self):
        system = make_system_charge("FRT", "Freight")
        invoice = make_invoice_charge("Liftgate Service", 40, code="ACC")

        assert score_charge_pair(system, invoice) == 0


# ============================================
# Reconciliation Tests
# ============================================

class TestReconciliation:
    """Pairing and comparison rows."""

    def test_partition(self):
        """Every non-tax charge appears exactly once across matched and unmatched."""
        system = [
            make_system_charge("FRT", "Freight", 100, 130),
            make_system_charge("FSC", "Fuel Surcharge", 20, 26),
            make_system_charge("HST", "HST", 15, 15),
        ]
        invoice = [
            make_invoice_charge("Freight", 100),
            make_invoice_charge("Fuel", 20),
            make_invoice_charge("HST 13%", 15),
            make_invoice_charge("Residential Delivery", 10),
        ]

        result = reconcile_charges(system, invoice, identity_rates())

        assert len(result.matched_charges) == 2
        assert len(result.unmatched_system) == 0
        assert len(result.unmatched_invoice) == 1
        assert len(result.excluded_tax_charges) == 2
        assert len(result.rows) == (
            len(result.matched_charges) + len(result.unmatched_system) + len(result.unmatched_invoice)
        )

    def test_no_tax_rows(self):
        """Tax lines never reach the comparison rows."""
        system = [make_system_charge("GST", "GST", 5, 5)]
        invoice = [make_invoice_charge("GST", 5), make_invoice_charge("Provincial Tax", 8)]

        result = reconcile_charges(system, invoice, identity_rates())

        assert result.rows == []
        assert not any(is_tax_charge(r.code, r.name) for r in result.rows)

    def test_row_order(self):
        """System charges in order, then invoice-only charges in order."""
        system = [
            make_system_charge("ACC", "Liftgate", 40, 50),
            make_system_charge("FRT", "Freight", 100, 130),
        ]
        invoice = [
            make_invoice_charge("Detention", 30),
            make_invoice_charge("Freight", 100),
            make_invoice_charge("Cargo Insurance", 12),
        ]

        result = reconcile_charges(system, invoice, identity_rates())

        assert [r.name for r in result.rows] == ["Liftgate", "Freight", "Detention", "Cargo Insurance"]
        assert [r.matched for r in result.rows] == [False, True, False, False]

    def test_greedy_pairing_is_order_dependent(self):
        """The first system charge takes the invoice charge even if a later one scores higher."""
        system = [
            make_system_charge("FRT", "Freight Charge", 100, 130),
            make_system_charge("FRT", "Freight", 100, 130),
        ]
        invoice = [make_invoice_charge("Freight", 100)]

        result = reconcile_charges(system, invoice, identity_rates())

        assert result.matched_charges[0].system_charge.name == "Freight Charge"
        assert result.unmatched_system[0].name == "Freight"

    def test_matched_row_values(self):
        """Matched rows carry system code/name and the variance against actual cost."""
        system = [make_system_charge("FRT", "Base Freight", 160, 200)]
        invoice = [make_invoice_charge("Freight", 175)]

        row = reconcile_charges(system, invoice, identity_rates()).rows[0]

        assert row.code == "FRT"
        assert row.name == "Base Freight"
        assert row.matched
        assert row.invoice_amount == 175
        assert row.variance_cost == 15
        assert row.profit == 25

    def test_unmatched_rows(self):
        """System-only rows bill nothing; invoice-only rows carry no system amounts."""
        system = [make_system_charge("ACC", "Liftgate", 40, 50)]
        invoice = [make_invoice_charge("Detention", 30)]

        result = reconcile_charges(system, invoice, identity_rates())
        system_row, invoice_row = result.rows

        assert system_row.invoice_amount == 0
        assert system_row.variance_cost == -40
        assert system_row.profit == 50
        assert invoice_row.code == "DET"
        assert invoice_row.system_actual_cost == 0
        assert invoice_row.variance_cost == 30
        assert invoice_row.profit == -30

    def test_foreign_currency_invoice(self):
        """System amounts are converted to the invoice currency; profit is in base currency."""
        system = [make_system_charge("FRT", "Freight", 100, 120)]
        invoice = [make_invoice_charge("Freight", 80, currency="USD")]

        row = reconcile_charges(system, invoice, USD_RATES).rows[0]

        assert row.currency == "USD"
        assert row.system_actual_cost == pytest.approx(75)
        assert row.system_actual_charge == pytest.approx(90)
        assert row.variance_cost == pytest.approx(5)
        # 90 USD billed vs 80 USD owed, in CAD
        assert row.profit == pytest.approx(13.33)

    def test_to_dict(self):
        result = reconcile_charges(
            [make_system_charge("FRT", "Freight", 100, 130)],
            [make_invoice_charge("Freight", 110)],
            identity_rates(),
        )

        data = result.to_dict()

        assert data["matched_count"] == 1
        assert data["total_variance"] == 10
        assert data["rates"]["provider"] == "identity"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

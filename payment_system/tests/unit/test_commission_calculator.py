from decimal import Decimal

import pytest
from django.test import override_settings

from payment_system.domain.exceptions import InvalidAmount, InvalidRate
from payment_system.domain.services.commission_calculator import calculate_commission_split, get_commission_rate


@pytest.mark.unit
class TestCommissionSplit:
    def test_ten_percent_of_19_99(self):
        split = calculate_commission_split(Decimal("19.99"), Decimal("0.10"))

        assert split.platform_commission == Decimal("2.00")
        assert split.seller_payout == Decimal("17.99")
        assert split.total_amount == Decimal("19.99")
        assert split.currency == "usd"

    @pytest.mark.parametrize(
        "total, commission",
        [
            ("0.25", "0.02"),  # 0.025 rounds to even
            ("0.35", "0.04"),  # 0.035 rounds to even
            ("100.05", "10.00"),  # 10.005
            ("100.15", "10.02"),  # 10.015
        ],
    )
    def test_commission_rounds_half_even(self, total, commission):
        split = calculate_commission_split(total, "0.10")

        assert split.platform_commission == Decimal(commission)
        assert split.seller_payout == Decimal(total) - Decimal(commission)

    def test_parts_always_sum_to_total(self):
        for rate in ["0", "0.05", "0.10", "0.125", "0.3333", "0.99"]:
            for cents in range(1, 2500, 7):
                total = Decimal(cents).scaleb(-2)
                split = calculate_commission_split(total, rate)
                assert split.platform_commission + split.seller_payout == total
                assert split.seller_payout >= 0

    def test_zero_rate_pays_seller_everything(self):
        split = calculate_commission_split("50.00", "0")

        assert split.platform_commission == Decimal("0.00")
        assert split.seller_payout == Decimal("50.00")

    def test_zero_decimal_currency(self):
        split = calculate_commission_split("1999", "0.10", currency="JPY")

        assert split.platform_commission == Decimal("200")
        assert split.seller_payout == Decimal("1799")
        assert split.currency == "jpy"

    @pytest.mark.parametrize("total", ["0", "0.00", "-1.00", "abc", "Infinity", "1.001", 19.99, None])
    def test_invalid_amount(self, total):
        with pytest.raises(InvalidAmount):
            calculate_commission_split(total, "0.10")

    def test_amount_more_precise_than_currency(self):
        with pytest.raises(InvalidAmount):
            calculate_commission_split("19.5", "0.10", currency="jpy")

    @pytest.mark.parametrize("rate", ["1", "1.5", "-0.01", "ten", 0.1, True])
    def test_invalid_rate(self, rate):
        with pytest.raises(InvalidRate):
            calculate_commission_split("10.00", rate)

    def test_error_codes(self):
        assert InvalidAmount.code == "invalid_amount"
        assert InvalidRate.code == "invalid_rate"


@pytest.mark.unit
class TestConfiguredRate:
    def test_reads_rate_from_settings(self):
        with override_settings(SETTLEMENT={"COMMISSION_RATE": "0.15"}):
            assert get_commission_rate() == Decimal("0.15")

    def test_defaults_to_ten_percent(self):
        with override_settings(SETTLEMENT={}):
            assert get_commission_rate() == Decimal("0.10")

    def test_rejects_misconfigured_rate(self):
        with override_settings(SETTLEMENT={"COMMISSION_RATE": "1.2"}):
            with pytest.raises(InvalidRate):
                get_commission_rate()

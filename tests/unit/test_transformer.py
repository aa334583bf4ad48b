"""
Unit tests for market normalization.
"""

import math
from datetime import timedelta
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from services.curator.transformer import (
    MarketTransformer,
    compute_days_left,
    decode_outcomes,
    decode_prices,
    first_number,
    parse_datetime,
    to_float,
)
from shared.models import Category, NewsLag


@pytest.fixture
def transformer(test_settings):
    """Create a MarketTransformer instance."""
    return MarketTransformer(settings=test_settings)


class TestFieldDecoding:
    """Tests for raw field decoding helpers."""

    def test_prices_from_json_string(self):
        """Test JSON-encoded price strings."""
        assert decode_prices('["0.6","0.4"]') == [0.6, 0.4]

    def test_prices_already_decoded(self):
        """Test price lists passed through."""
        assert decode_prices([0.3, 0.7]) == [0.3, 0.7]

    @pytest.mark.parametrize(
        "value",
        [None, "", "not json", "[]", '["a","b"]', 42, '["NaN","0.5"]', "[0.5, Infinity]"],
    )
    def test_prices_default(self, value):
        """Test malformed prices fall back to [0, 0]."""
        assert decode_prices(value) == [0.0, 0.0]

    def test_outcomes_default(self):
        """Test malformed outcomes fall back to Yes/No."""
        assert decode_outcomes("{broken") == ["Yes", "No"]
        assert decode_outcomes(None) == ["Yes", "No"]

    def test_outcomes_from_json_string(self):
        """Test JSON-encoded outcome labels."""
        assert decode_outcomes('["Up","Down"]') == ["Up", "Down"]

    def test_first_number(self):
        """Test numeric fallback chain."""
        assert first_number(None, "1234.5") == 1234.5
        assert first_number(0, "abc", 7) == 7
        assert first_number(None, None) == 0.0
        assert first_number("x", default=3.0) == 3.0
        assert first_number("NaN", 5) == 5
        assert first_number("Infinity") == 0.0
        assert first_number(float("nan"), "-inf", 2.5) == 2.5

    @pytest.mark.parametrize("value", ["nan", "NaN", "inf", "-Infinity", float("inf"), True, None, "abc"])
    def test_to_float_rejects_non_numbers(self, value):
        """Test non-finite and non-numeric values parse to None."""
        assert to_float(value) is None

    def test_parse_datetime(self):
        """Test ISO timestamps with Z suffix become aware UTC datetimes."""
        parsed = parse_datetime("2026-06-20T00:00:00Z")
        assert parsed is not None
        assert parsed.tzinfo is not None
        assert parse_datetime("garbage") is None
        assert parse_datetime(None) is None

    def test_days_left(self, fixed_now):
        """Test days left is clamped and defaults to 30."""
        assert compute_days_left(fixed_now + timedelta(days=2), fixed_now) == 2.0
        assert compute_days_left(fixed_now - timedelta(days=2), fixed_now) == 0.0
        assert compute_days_left(None, fixed_now) == 30.0


class TestQualityGates:
    """Tests for the hard quality gates."""

    def test_gate_order(self, transformer):
        """Test liquidity is checked before volume and price."""
        result = transformer.check_gates(liquidity=500, volume_24hr=10, yes_price=0.99)
        assert result.passed is False
        assert result.reason == "liquidity"

    def test_volume_gate(self, transformer):
        """Test dead markets are rejected."""
        result = transformer.check_gates(liquidity=50000, volume_24hr=999, yes_price=0.5)
        assert result.reason == "volume_24hr"

    @pytest.mark.parametrize("price", [0.0, 0.05, 0.95, 1.0])
    def test_price_gate(self, transformer, price):
        """Test foregone conclusions are rejected, boundaries included."""
        result = transformer.check_gates(liquidity=50000, volume_24hr=5000, yes_price=price)
        assert result.reason == "price"

    def test_passes(self, transformer):
        """Test a healthy market passes."""
        assert transformer.check_gates(10000, 1000, 0.06).passed is True


class TestNormalize:
    """Tests for MarketTransformer.normalize."""

    def test_one_of_two_contracts_passes(self, transformer, make_event, make_contract, fixed_now):
        """Test a gated contract is dropped while its sibling survives."""
        good = make_contract(liquidityNum=50000, volume24hr=10000, outcomePrices='["0.4","0.6"]')
        bad = make_contract(liquidityNum=500, liquidity="500")
        markets = transformer.normalize([make_event(markets=[good, bad])], fixed_now)

        assert len(markets) == 1
        assert markets[0].id == good["id"]
        assert markets[0].yes_price == 0.4

    def test_json_string_prices(self, transformer, make_event, make_contract, fixed_now):
        """Test string-encoded prices decode to yes/no prices."""
        contract = make_contract(outcomePrices="[\"0.6\",\"0.4\"]")
        market = transformer.normalize([make_event(markets=[contract])], fixed_now)[0]

        assert market.yes_price == 0.6
        assert market.no_price == 0.4
        assert market.prices == [0.6, 0.4]

    def test_no_price_derived_when_missing(self, transformer, make_event, make_contract, fixed_now):
        """Test NO price defaults to 1 - YES."""
        contract = make_contract(outcomePrices=["0.3"])
        market = transformer.normalize([make_event(markets=[contract])], fixed_now)[0]

        assert market.no_price == pytest.approx(0.7)

    def test_malformed_prices_gate_out(self, transformer, make_event, make_contract, fixed_now):
        """Test undecodable prices default to 0 and fail the price gate."""
        contract = make_contract(outcomePrices="oops")
        assert transformer.normalize([make_event(markets=[contract])], fixed_now) == []

    def test_skips_closed_and_inactive(self, transformer, make_event, make_contract, fixed_now):
        """Test closed or inactive contracts are skipped."""
        event = make_event(markets=[
            make_contract(closed=True),
            make_contract(active=False),
            make_contract(),
        ])
        assert len(transformer.normalize([event], fixed_now)) == 1

    def test_skips_events_without_contracts(self, transformer, make_event, fixed_now):
        """Test events with no nested markets are skipped."""
        events = [make_event(markets=[]), {"id": "x", "title": "No markets key"}]
        assert transformer.normalize(events, fixed_now) == []

    def test_malformed_contract_does_not_abort_batch(self, transformer, make_event, make_contract, fixed_now):
        """Test a contract that fails validation is skipped, not fatal."""
        broken = make_contract(outcomePrices='["0.5","-3"]')
        event = make_event(markets=[broken, make_contract()])

        markets = transformer.normalize([event], fixed_now)

        assert len(markets) == 1

    def test_non_list_tags_still_normalize(self, transformer, make_event, fixed_now):
        """Test an event whose tags field is not a list keeps its contracts."""
        markets = transformer.normalize([make_event(tags=5)], fixed_now)

        assert len(markets) == 1
        assert markets[0].category == Category.POLITICS

    def test_broken_event_does_not_abort_batch(self, transformer, make_event, fixed_now):
        """Test an event that fails categorization is skipped, not fatal."""
        events = [make_event(), make_event(title="NBA Finals")]

        with patch(
            "services.curator.transformer.categorize",
            side_effect=[RuntimeError("bad title"), Category.SPORTS],
        ):
            markets = transformer.normalize(events, fixed_now)

        assert len(markets) == 1
        assert markets[0].category == Category.SPORTS

    def test_non_finite_numbers_gate_out(self, transformer, make_event, make_contract, fixed_now):
        """Test NaN liquidity and infinite volume never pass the gates."""
        contracts = [
            make_contract(liquidityNum=None, liquidity="NaN"),
            make_contract(liquidityNum="Infinity"),
            make_contract(volume24hr="Infinity"),
            make_contract(volume24hr=float("nan")),
            make_contract(outcomePrices="[NaN, 0.5]"),
        ]

        assert transformer.normalize([make_event(markets=contracts)], fixed_now) == []

    def test_non_finite_total_volume_falls_back(self, transformer, make_event, make_contract, fixed_now):
        """Test an infinite total volume falls through to the next field."""
        contract = make_contract(volumeNum="Infinity", volume="20000")

        market = transformer.normalize([make_event(markets=[contract])], fixed_now)[0]

        assert market.volume == 20000.0
        assert market.volume_24hr_fmt == "$10.0K"

    def test_string_volume_fallbacks(self, transformer, make_event, make_contract, fixed_now):
        """Test string volume and liquidity fields are parsed."""
        contract = make_contract(volumeNum=None, volume="20000.5", liquidityNum=None, liquidity="30000")
        market = transformer.normalize([make_event(markets=[contract])], fixed_now)[0]

        assert market.volume == 20000.5
        assert market.liquidity == 30000.0
        assert market.volume_ratio == pytest.approx(10000 / 20000.5)

    def test_derived_fields(self, transformer, make_event, make_contract, fixed_now):
        """Test category, url, days left, edge and formatted fields."""
        contract = make_contract(
            endDate=(fixed_now + timedelta(days=2)).isoformat(),
            oneDayPriceChange=0.001,
        )
        event = make_event(markets=[contract], title="NBA Finals Winner", tags=[], slug="nba-finals")
        market = transformer.normalize([event], fixed_now)[0]

        assert market.category == Category.SPORTS
        assert market.category_icon == "⚽"
        assert market.polymarket_url == "https://polymarket.com/event/nba-finals"
        assert market.days_left == 2.0
        assert market.news_lag == NewsLag.HIGH
        assert market.volume_24hr_fmt == "$10.0K"
        assert market.liquidity_fmt == "$50.0K"
        assert 0 <= market.edge <= 100

    def test_end_date_falls_back_to_event(self, transformer, make_event, make_contract, fixed_now):
        """Test the event end date is used when the contract has none."""
        contract = make_contract(endDate=None)
        end = (fixed_now + timedelta(days=5)).isoformat()
        market = transformer.normalize([make_event(markets=[contract], endDate=end)], fixed_now)[0]

        assert market.days_left == 5.0

    def test_missing_end_date_defaults(self, transformer, make_event, make_contract, fixed_now):
        """Test days left defaults to 30 without any end date."""
        contract = make_contract(endDate=None)
        market = transformer.normalize([make_event(markets=[contract])], fixed_now)[0]

        assert market.days_left == 30.0
        assert market.end_date is None

    def test_unknown_price_change(self, transformer, make_event, make_contract, fixed_now):
        """Test a missing one-day change stays None and news lag is LOW."""
        contract = make_contract(
            oneDayPriceChange=None,
            endDate=(fixed_now + timedelta(hours=12)).isoformat(),
        )
        market = transformer.normalize([make_event(markets=[contract])], fixed_now)[0]

        assert market.price_change_1d is None
        assert market.news_lag == NewsLag.LOW

    def test_question_and_description_fallbacks(self, transformer, make_event, make_contract, fixed_now):
        """Test question prefers groupItemTitle and description is capped."""
        contract = make_contract(groupItemTitle="Candidate A", description="")
        event = make_event(markets=[contract], description="x" * 900)
        market = transformer.normalize([event], fixed_now)[0]

        assert market.question == "Candidate A"
        assert len(market.description) == 500

    def test_quality_gates_hold(self, transformer, make_event, make_contract, fixed_now):
        """Test every surviving market satisfies the gates."""
        contracts = [
            make_contract(outcomePrices=f'["{p}","{1 - p:.2f}"]', liquidityNum=liq, volume24hr=vol)
            for p in (0.03, 0.05, 0.2, 0.5, 0.94, 0.95)
            for liq in (5000, 10000, 80000, "NaN")
            for vol in (500, 1000, 20000, "Infinity")
        ]
        markets = transformer.normalize([make_event(markets=contracts)], fixed_now)

        assert markets
        for m in markets:
            assert m.liquidity >= 10000
            assert m.volume_24hr >= 1000
            assert 0.05 < m.yes_price < 0.95
            assert 0 <= m.no_price <= 1
            assert math.isfinite(m.liquidity) and math.isfinite(m.volume_24hr)

    def test_output_is_immutable(self, transformer, make_event, fixed_now):
        """Test normalized markets cannot be mutated."""
        market = transformer.normalize([make_event()], fixed_now)[0]

        with pytest.raises(ValidationError):
            market.edge = 0.0

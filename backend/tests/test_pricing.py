# -*- coding: utf-8 -*-
"""
Tests for series adjusted pricing

Scenario used throughout: series list price 100 with videos priced 30/30/40.
The buyer owns videos individually because they bought them while standalone,
before the creator bundled them.
"""
import pytest

from coinvault.managers.PricingManager import PricingManager
from coinvault.managers.PurchaseManager import PurchaseManager
from coinvault.models.typings import NotFoundException


@pytest.fixture
def scenario(creator, buyer, make_video, make_series, top_up):
    """Returns a builder: owned_prices are the videos the buyer bought before bundling."""
    def _build(owned_prices=(), other_prices=(30, 30, 40), series_price=100):
        owned = [make_video(creator, price, title=f"owned {i}") for i, price in enumerate(owned_prices)]
        if owned_prices:
            top_up(buyer, sum(owned_prices))
        for video in owned:
            PurchaseManager.instance().purchase_video(buyer, video.id)
        return make_series(creator, series_price, video_prices=other_prices, videos=owned)
    return _build


class TestAdjustedPrice:

    def test_nothing_owned(self, buyer, scenario):
        series = scenario()
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert result["original_price"] == 100
        assert result["total_deduction"] == 0
        assert result["adjusted_price"] == 100
        assert result["owned_videos"] == []
        assert result["all_videos_owned"] is False

    def test_forty_coin_video_owned(self, buyer, scenario):
        series = scenario(owned_prices=(40,), other_prices=(30, 30))
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert result["total_deduction"] == 40
        assert result["adjusted_price"] == 60
        assert [item["coin_price"] for item in result["owned_videos"]] == [40]
        assert result["all_videos_owned"] is False

    def test_all_owned_is_free(self, buyer, scenario):
        series = scenario(owned_prices=(30, 30, 40), other_prices=())
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert result["all_videos_owned"] is True
        assert result["adjusted_price"] == 0

    def test_all_owned_is_free_even_when_deduction_is_short(self, buyer, scenario):
        series = scenario(owned_prices=(10, 10), other_prices=(), series_price=100)
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert result["total_deduction"] == 20
        assert result["all_videos_owned"] is True
        assert result["adjusted_price"] == 0

    def test_surplus_deduction_is_discarded(self, buyer, scenario):
        series = scenario(owned_prices=(80, 50), other_prices=(30,), series_price=100)
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert result["total_deduction"] == 130
        assert result["adjusted_price"] == 0
        assert result["all_videos_owned"] is False

    def test_empty_series_keeps_list_price(self, creator, buyer, make_series):
        series = make_series(creator, 70)
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert result["adjusted_price"] == 70
        assert result["all_videos_owned"] is False

    @pytest.mark.parametrize("owned_prices", [(), (30,), (30, 30), (40,), (30, 40)])
    def test_adjusted_never_above_original(self, buyer, scenario, owned_prices):
        remaining = [30, 30, 40]
        for price in owned_prices:
            remaining.remove(price)
        series = scenario(owned_prices=owned_prices, other_prices=tuple(remaining))
        result = PricingManager.instance().calculate_adjusted_price(buyer.id, series.id)
        assert 0 <= result["adjusted_price"] <= result["original_price"]
        assert result["adjusted_price"] == 100 - sum(owned_prices)

    def test_unknown_series(self, buyer):
        with pytest.raises(NotFoundException):
            PricingManager.instance().calculate_adjusted_price(buyer.id, "missing")


class TestPricePreview:

    def test_preview_itemizes_deductions(self, buyer, scenario):
        series = scenario(owned_prices=(40,), other_prices=(30, 30))
        preview = PricingManager.instance().get_price_preview(buyer.id, series.id)
        assert preview["originalPrice"] == 100
        assert preview["adjustedPrice"] == 60
        assert preview["totalDeduction"] == 40
        assert preview["allVideosOwned"] is False
        assert len(preview["deductions"]) == 1
        assert preview["deductions"][0]["coinPrice"] == 40
        assert preview["deductions"][0]["videoTitle"] == "owned 0"

    def test_unowned_videos_in_order(self, buyer, scenario):
        series = scenario(owned_prices=(40,), other_prices=(30, 30))
        unowned = PricingManager.instance().get_unowned_series_videos(buyer.id, series.id)
        assert [video.coin_price for video in unowned] == [30, 30]

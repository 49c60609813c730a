# -*- coding: utf-8 -*-
import pytest

from coinvault.managers.CoinTransactionManager import CoinTransactionManager
from coinvault.managers.EarningManager import EarningManager
from coinvault.managers.PurchaseManager import PurchaseManager
from coinvault.models.CoinTransaction import CoinTransaction, DIRECTION_SPEND, TYPE_WITHDRAWAL
from coinvault.models.typings import ForbiddenException, ValidationException


@pytest.fixture
def earned(creator, buyer, make_video, top_up):
    """Creator earns `coins` from one video sale."""
    def _earn(coins):
        video = make_video(creator, coins)
        top_up(buyer, coins)
        PurchaseManager.instance().purchase_video(buyer, video.id)
        return video
    return _earn


class TestEarningsSummary:

    def test_summary_groups_by_content(self, creator, earned):
        first = earned(1500)
        second = earned(1000)

        summary = EarningManager.instance().get_earnings_summary(creator.id)

        assert summary["totalEarned"] == 2500
        assert summary["totalWithdrawn"] == 0
        assert summary["withdrawableCoins"] == 2500
        assert summary["withdrawableRupees"] == 125
        assert summary["walletBalance"] == 2500
        by_content = {item["contentId"]: item["coinsEarned"] for item in summary["byContent"]}
        assert by_content == {first.id: 1500, second.id: 1000}
        assert len(summary["recentEarnings"]) == 2

    def test_topups_are_not_withdrawable(self, creator, top_up, earned):
        earned(2000)
        top_up(creator, 5000)
        assert EarningManager.instance().get_withdrawable_coins(creator.id) == 2000

    def test_spent_earnings_not_withdrawable(self, creator, make_user, make_video, earned):
        earned(2500)
        other = make_user(role="creator")
        video = make_video(other, 1000)
        PurchaseManager.instance().purchase_video(creator, video.id)
        assert EarningManager.instance().get_withdrawable_coins(creator.id) == 1500


class TestWithdraw:

    def test_withdraw_records_spend(self, creator, earned):
        earned(3000)

        result = EarningManager.instance().withdraw(creator, 2000, "upi")

        assert result["coins"] == 2000
        assert result["rupees"] == 100
        assert result["remainingBalance"] == 1000
        row = CoinTransaction.query.filter_by(user_id=creator.id, transaction_type=TYPE_WITHDRAWAL).one()
        assert row.direction == DIRECTION_SPEND
        assert EarningManager.instance().get_withdrawable_coins(creator.id) == 1000

    def test_cannot_exceed_earnings(self, creator, earned):
        earned(2500)
        with pytest.raises(ValidationException) as exc_info:
            EarningManager.instance().withdraw(creator, 3000, "bank_transfer")
        assert exc_info.value.to_dict()["details"]["withdrawableCoins"] == 2500
        assert CoinTransactionManager.instance().get_balance(creator.id) == 2500

    def test_minimum_withdrawal(self, creator, earned, config_values):
        config_values(min_withdrawal_rupees=200)
        earned(3000)
        with pytest.raises(ValidationException) as exc_info:
            EarningManager.instance().withdraw(creator, 3000, "upi")
        assert exc_info.value.details["minimum"] == 4000

    def test_unknown_method(self, creator):
        with pytest.raises(ValidationException):
            EarningManager.instance().withdraw(creator, 2000, "cash")

    def test_member_cannot_withdraw(self, buyer):
        with pytest.raises(ForbiddenException):
            EarningManager.instance().withdraw(buyer, 2000, "upi")

"""Unit tests for peer comparison"""

from datetime import timedelta

import pytest

from finsight.domain.clustering import build_user_profile, find_similar_users, profile_similarity
from finsight.domain.exceptions import InputContractViolation
from finsight.domain.models import Category, TransactionType


@pytest.fixture
def histories(make_record, now):
    def spend(monthly, category):
        # same amount in two different months
        return [
            make_record(monthly, date=now - timedelta(days=5), category=category),
            make_record(monthly, date=now - timedelta(days=40), category=category),
        ]

    return {
        "me": spend(10000, Category.FOOD),
        "close": spend(9000, Category.FOOD),
        "other_category": spend(10000, Category.TRANSPORT),
        "small_spender": spend(2000, Category.FOOD),
    }


def test_profile(histories):
    profile = build_user_profile("me", histories["me"])

    assert profile.avg_monthly_spend == pytest.approx(10000)
    assert profile.dominant_category == Category.FOOD
    assert profile.transaction_count == 2


def test_profile_without_records():
    profile = build_user_profile("empty", [])
    assert profile.avg_monthly_spend == 0.0
    assert profile.dominant_category == Category.OTHER


def test_dominant_category_tie_keeps_first_seen(make_record):
    records = [make_record(10, category=Category.HEALTH), make_record(10, category=Category.FOOD)]
    assert build_user_profile("u", records).dominant_category == Category.HEALTH


def test_ranking(histories):
    report = find_similar_users("me", histories, k=5)

    assert report.pool_size == 4
    assert [s.profile.user_id for s in report.similar_users] == ["close", "other_category", "small_spender"]
    # 0.6 * 0.9 + 0.4
    assert report.similar_users[0].similarity == pytest.approx(0.94)
    assert report.similar_users[1].similarity == pytest.approx(0.6)
    assert report.similar_users[2].similarity == pytest.approx(0.52)


def test_k_limits_results(histories):
    report = find_similar_users("me", histories, k=2)

    assert len(report.similar_users) == 2
    assert report.peer_avg_monthly_spend == pytest.approx(9500)


def test_pool_too_small(histories):
    result = find_similar_users("me", {"me": histories["me"], "close": histories["close"]})
    assert result.has_data is False
    assert result.required == 3


def test_unknown_user_raises(histories):
    with pytest.raises(InputContractViolation):
        find_similar_users("ghost", histories)


def test_non_positive_k_raises(histories):
    with pytest.raises(InputContractViolation):
        find_similar_users("me", histories, k=0)


def test_zero_spenders_only_share_category(make_record):
    salary = dict(type=TransactionType.INCOME, category=Category.SALARY)
    a = build_user_profile("a", [make_record(1000, **salary)])
    b = build_user_profile("b", [make_record(2000, **salary)])

    assert profile_similarity(a, b) == pytest.approx(0.4)


def test_similarity_is_bounded_and_symmetric(histories):
    profiles = [build_user_profile(uid, records) for uid, records in histories.items()]
    for a in profiles:
        for b in profiles:
            assert 0 <= profile_similarity(a, b) <= 1
            assert profile_similarity(a, b) == pytest.approx(profile_similarity(b, a))

"""Peer comparison - nearest users by spending level and dominant category"""

from collections import Counter
from typing import List, Mapping, Sequence, Union

from finsight.domain.exceptions import InputContractViolation
from finsight.domain.models import Category, TransactionRecord
from finsight.domain.policy import DEFAULT_POLICY, AnalyticsPolicy
from finsight.domain.results import InsufficientData, SimilarUser, SimilarUsersReport, UserProfile
from finsight.domain.statistics import mean
from finsight.utils.date_utils import month_key

SPEND_WEIGHT = 0.6
CATEGORY_WEIGHT = 0.4


def build_user_profile(
    user_id: str,
    records: Sequence[TransactionRecord],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> UserProfile:
    """
    Summarize one user's history.

    Average monthly spend divides expenses by the number of calendar months
    that have any expense. The dominant category is the most frequent one
    across all records (first seen wins a tie); users without records fall
    back to `other`.
    """
    expenses = [r for r in records if r.is_expense]
    total = sum(r.base_amount(policy.usd_exchange_rate) for r in expenses)
    months = len({month_key(r.date) for r in expenses}) or 1

    counts = Counter(r.category for r in records)
    dominant = counts.most_common(1)[0][0] if counts else Category.OTHER

    return UserProfile(
        user_id=user_id,
        avg_monthly_spend=round(total / months, 2),
        dominant_category=dominant,
        transaction_count=len(records),
    )


def profile_similarity(a: UserProfile, b: UserProfile) -> float:
    """0.6 * spend closeness + 0.4 if the dominant categories match, in [0, 1]"""
    highest = max(a.avg_monthly_spend, b.avg_monthly_spend)
    if highest > 0:
        spend_similarity = 1 - abs(a.avg_monthly_spend - b.avg_monthly_spend) / highest
    else:
        spend_similarity = 0.0

    similarity = spend_similarity * SPEND_WEIGHT
    if a.dominant_category == b.dominant_category:
        similarity += CATEGORY_WEIGHT
    return max(0.0, min(1.0, similarity))


def find_similar_users(
    user_id: str,
    histories: Mapping[str, Sequence[TransactionRecord]],
    k: int = 5,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[SimilarUsersReport, InsufficientData]:
    """
    Rank the other users in `histories` by similarity to `user_id`.

    Requirements:
    - at least `min_similarity_pool` users in the pool
    - `user_id` must be part of the pool
    """
    if k < 1:
        raise InputContractViolation(f"k must be at least 1, got {k}")
    if len(histories) < policy.min_similarity_pool:
        return InsufficientData(
            reason="Not enough users for a peer comparison",
            required=policy.min_similarity_pool,
            available=len(histories),
        )
    if user_id not in histories:
        raise InputContractViolation(f"User {user_id} is not part of the comparison pool")

    profiles = {uid: build_user_profile(uid, records, policy) for uid, records in histories.items()}
    target = profiles[user_id]

    ranked: List[SimilarUser] = sorted(
        (
            SimilarUser(profile=profile, similarity=round(profile_similarity(target, profile), 2))
            for uid, profile in profiles.items()
            if uid != user_id
        ),
        key=lambda s: s.similarity,
        reverse=True,
    )[:k]

    return SimilarUsersReport(
        user=target,
        pool_size=len(profiles),
        similar_users=ranked,
        peer_avg_monthly_spend=round(mean([s.profile.avg_monthly_spend for s in ranked]), 2),
    )

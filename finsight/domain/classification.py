"""Classification engine - keyword scoring with an amount-based fallback"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from finsight.domain.keywords import DEFAULT_KEYWORD_TABLE, KeywordTable, build_keyword_table
from finsight.domain.models import Category, Currency
from finsight.domain.policy import DEFAULT_POLICY
from finsight.domain.results import AlternativeCategory, Classification

MAX_ALTERNATIVES = 2
ALTERNATIVE_MIN_CONFIDENCE = 0.5


@dataclass(frozen=True)
class AmountBand:
    """Fallback category for amounts strictly below `upper` (None = no limit)"""

    upper: Optional[float]
    category: Category
    confidence: float


DEFAULT_AMOUNT_BANDS: Tuple[AmountBand, ...] = (
    AmountBand(upper=100, category=Category.TRANSPORT, confidence=0.4),
    AmountBand(upper=500, category=Category.FOOD, confidence=0.4),
    AmountBand(upper=None, category=Category.OTHER, confidence=0.3),
)


@dataclass
class _CategoryScore:
    category: Category
    confidence: float
    score: float
    matched: List[str]


class ClassificationEngine:
    """
    Assigns a category to a free-text transaction description.

    The keyword table and amount bands are fixed at construction; the engine
    holds no other state, so one instance can be shared freely.
    """

    def __init__(
        self,
        keyword_table: KeywordTable = DEFAULT_KEYWORD_TABLE,
        amount_bands: Sequence[AmountBand] = DEFAULT_AMOUNT_BANDS,
        usd_exchange_rate: float = DEFAULT_POLICY.usd_exchange_rate,
    ):
        self.keyword_table = build_keyword_table(keyword_table)
        self.amount_bands = tuple(amount_bands)
        self.usd_exchange_rate = usd_exchange_rate

    def classify(
        self,
        description: str,
        amount: float = 0.0,
        currency: Currency = Currency.HTG,
    ) -> Classification:
        text = (description or "").lower().strip()
        scores = self._score(text)

        if not scores:
            return self._classify_by_amount(amount, currency)

        ranked = sorted(scores, key=lambda s: (s.confidence, s.score), reverse=True)
        best = ranked[0]
        return Classification(
            category=best.category,
            confidence=best.confidence,
            method="keyword_based",
            matched_keywords=best.matched,
            alternatives=self._alternatives(ranked[1:]),
            score=best.score,
        )

    def classify_many(self, items: Sequence[Tuple[str, float]]) -> List[Classification]:
        return [self.classify(description, amount) for description, amount in items]

    def _score(self, text: str) -> List[_CategoryScore]:
        if not text:
            return []

        scores = []
        for category, rule in self.keyword_table.items():
            matched = [keyword for keyword in rule.keywords if keyword in text]
            if not matched:
                continue
            total = rule.confidence * len(matched)
            scores.append(
                _CategoryScore(
                    category=category,
                    confidence=min(total, 1.0),
                    score=total / len(rule.keywords),
                    matched=matched,
                )
            )
        return scores

    def _alternatives(self, ranked: List[_CategoryScore]) -> List[AlternativeCategory]:
        candidates = [s for s in ranked if s.confidence > ALTERNATIVE_MIN_CONFIDENCE]
        kept = candidates[:MAX_ALTERNATIVES]
        if kept:
            # keep anything tied with the last kept alternative
            cutoff = kept[-1].confidence
            kept.extend(s for s in candidates[MAX_ALTERNATIVES:] if s.confidence == cutoff)
        return [AlternativeCategory(category=s.category, confidence=s.confidence) for s in kept]

    def _classify_by_amount(self, amount: float, currency: Currency) -> Classification:
        normalized = abs(amount)
        if currency == Currency.USD:
            normalized *= self.usd_exchange_rate

        for band in self.amount_bands:
            if band.upper is None or normalized < band.upper:
                return Classification(
                    category=band.category,
                    confidence=band.confidence,
                    method="amount_based",
                    note="No keyword matched; category inferred from amount",
                )
        return Classification(
            category=Category.OTHER,
            confidence=0.0,
            method="amount_based",
            note="No keyword or amount band matched",
        )


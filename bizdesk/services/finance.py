"""Ledger aggregates shown on the finance dashboard."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from bizdesk.constants import TRANSACTION_CATEGORIES, TransactionType
from bizdesk.models.entities import Transaction, coerce_enum


@dataclass
class FinanceSummary:
    income: float = 0.0
    expenses: float = 0.0
    investments: float = 0.0
    by_category: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @property
    def balance(self) -> float:
        return self.income - self.expenses - self.investments

    @property
    def margin(self) -> float:
        """Net margin in percent; zero without income."""
        if self.income <= 0:
            return 0.0
        return round((self.income - self.expenses) / self.income * 100, 2)

    def to_dict(self) -> dict:
        return {
            "income": round(self.income, 2),
            "expenses": round(self.expenses, 2),
            "investments": round(self.investments, 2),
            "balance": round(self.balance, 2),
            "margin": self.margin,
            "byCategory": self.by_category,
        }


def summarize(transactions: Iterable[Transaction]) -> FinanceSummary:
    summary = FinanceSummary()
    categories: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for transaction in transactions:
        kind = coerce_enum(TransactionType, transaction.type)
        value = float(transaction.value or 0)
        if kind == TransactionType.INCOME:
            summary.income += value
        elif kind == TransactionType.EXPENSE:
            summary.expenses += value
        elif kind == TransactionType.INVESTMENT:
            summary.investments += value
        else:
            continue
        categories[kind.value][transaction.category or "Outros"] += value
    summary.by_category = {
        kind: {name: round(total, 2) for name, total in totals.items()}
        for kind, totals in categories.items()
    }
    return summary


def category_suggestions(transaction_type=None) -> Dict[str, List[str]]:
    """Suggested categories per type (or for one type only)."""
    if transaction_type is not None:
        kind = TransactionType(getattr(transaction_type, "value", transaction_type))
        return {kind.value: list(TRANSACTION_CATEGORIES[kind])}
    return {kind.value: list(names) for kind, names in TRANSACTION_CATEGORIES.items()}

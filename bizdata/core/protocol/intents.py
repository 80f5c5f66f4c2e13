from typing import Dict, List, Sequence, Tuple

from bizdata.core.schemas import Capability, Intent


# -----------------------------------------------------------------------------
# INTENTS MODULE
# Purpose: decide what a question is about and which data it needs.
# Classification is a lookup over keyword rows, so a new language is a new
# row set in INTENT_KEYWORDS, not new branching code.
# -----------------------------------------------------------------------------


# Rows are checked in this category order; the first category with a hit wins.
INTENT_PRIORITY: Tuple[Intent, ...] = (
    Intent.REPORT_GENERATION,
    Intent.DASHBOARD_OVERVIEW,
    Intent.CUSTOMER_MANAGEMENT,
    Intent.SALES_ANALYSIS,
    Intent.INVENTORY_MANAGEMENT,
    Intent.FINANCIAL_REPORT,
    Intent.BUSINESS_INSIGHTS,
)

INTENT_KEYWORDS: Dict[str, Dict[Intent, Tuple[str, ...]]] = {
    "en": {
        Intent.REPORT_GENERATION: ("report", "write-up", "summarize everything"),
        Intent.DASHBOARD_OVERVIEW: ("dashboard", "at a glance", "big picture", "whole business"),
        Intent.CUSTOMER_MANAGEMENT: ("customer", "client"),
        Intent.SALES_ANALYSIS: ("sales", "revenue", "selling"),
        Intent.INVENTORY_MANAGEMENT: ("inventory", "stock", "product"),
        Intent.FINANCIAL_REPORT: ("finance", "financial", "accounting", "profit", "expense"),
        Intent.BUSINESS_INSIGHTS: ("analysis", "analyze", "insight", "trend"),
    },
    "ja": {
        Intent.REPORT_GENERATION: ("レポート", "報告書", "まとめて"),
        Intent.DASHBOARD_OVERVIEW: ("ダッシュボード", "概要", "全体"),
        Intent.CUSTOMER_MANAGEMENT: ("顧客", "クライアント", "お客様"),
        Intent.SALES_ANALYSIS: ("売上", "販売", "売れ行き"),
        Intent.INVENTORY_MANAGEMENT: ("在庫", "商品", "製品"),
        Intent.FINANCIAL_REPORT: ("財務", "会計", "収支"),
        Intent.BUSINESS_INSIGHTS: ("分析", "洞察", "トレンド"),
    },
}

CAPABILITY_TABLE: Dict[Intent, Tuple[Capability, ...]] = {
    Intent.DASHBOARD_OVERVIEW: (
        Capability.DATA_ANALYSIS,
        Capability.REPORT_GENERATION,
    ),
    Intent.CUSTOMER_MANAGEMENT: (
        Capability.CUSTOMER_INSIGHTS,
        Capability.DATA_ANALYSIS,
    ),
    Intent.SALES_ANALYSIS: (
        Capability.SALES_FORECASTING,
        Capability.DATA_ANALYSIS,
    ),
    Intent.INVENTORY_MANAGEMENT: (
        Capability.INVENTORY_OPTIMIZATION,
        Capability.DATA_ANALYSIS,
    ),
    Intent.FINANCIAL_REPORT: (
        Capability.FINANCIAL_ANALYSIS,
        Capability.REPORT_GENERATION,
    ),
    Intent.BUSINESS_INSIGHTS: (
        Capability.DATA_ANALYSIS,
        Capability.REPORT_GENERATION,
        Capability.SALES_FORECASTING,
    ),
    # A full report asks for everything
    Intent.REPORT_GENERATION: (
        Capability.REPORT_GENERATION,
        Capability.DATA_ANALYSIS,
        Capability.CUSTOMER_INSIGHTS,
        Capability.SALES_FORECASTING,
        Capability.INVENTORY_OPTIMIZATION,
        Capability.FINANCIAL_ANALYSIS,
    ),
    Intent.GENERAL_QUERY: (),
}


class IntentClassifier:
    def __init__(self, rules: Sequence[Tuple[Intent, Sequence[str]]]):
        self.rules = [
            (intent, frozenset(keyword.lower() for keyword in keywords))
            for intent, keywords in rules
        ]

    @classmethod
    def for_locales(cls, locales: Sequence[str]) -> "IntentClassifier":
        """Merge locale rows into one rule per category, in priority order."""
        merged: Dict[Intent, List[str]] = {intent: [] for intent in INTENT_PRIORITY}
        for locale in locales:
            if locale not in INTENT_KEYWORDS:
                raise ValueError(f"No intent keywords for locale: {locale}")
            for intent, keywords in INTENT_KEYWORDS[locale].items():
                merged[intent].extend(keywords)
        return cls([(intent, merged[intent]) for intent in INTENT_PRIORITY])

    def classify(self, text: str) -> Intent:
        lowered = (text or "").lower()
        for intent, keywords in self.rules:
            if any(keyword in lowered for keyword in keywords):
                return intent
        return Intent.GENERAL_QUERY


def capabilities_for(intent: Intent) -> List[Capability]:
    return list(CAPABILITY_TABLE.get(intent, ()))


def classify(text: str, locales: Sequence[str] = ("en", "ja")) -> Intent:
    return IntentClassifier.for_locales(locales).classify(text)

"""Which read-models go stale when a ledger entity changes"""

from enum import Enum
from typing import Dict, FrozenSet, List


class ReadModel(str, Enum):
    DEBTOR_SNAPSHOT = "debtor_snapshot"
    CATEGORY_ROLLUP = "category_rollup"
    FOLLOW_UP_STATS = "follow_up_stats"
    RISK_FORECAST = "risk_forecast"
    TENANT_SUMMARY = "tenant_summary"
    INVOICE_STATUS_CARDS = "invoice_status_cards"
    CREDIT_UTILIZATION = "credit_utilization"


class LedgerEntity(str, Enum):
    CUSTOMER = "customer"
    CUSTOMER_CATEGORY = "customer_category"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    FOLLOW_UP = "follow_up"
    CATEGORY_RULE = "category_rule"


INVALIDATES: Dict[LedgerEntity, FrozenSet[ReadModel]] = {
    # Opening balance, credit limit, terms and name feed every read-model
    LedgerEntity.CUSTOMER: frozenset(ReadModel),
    LedgerEntity.CUSTOMER_CATEGORY: frozenset(
        {
            ReadModel.DEBTOR_SNAPSHOT,
            ReadModel.CATEGORY_ROLLUP,
            ReadModel.RISK_FORECAST,
            ReadModel.TENANT_SUMMARY,
            ReadModel.CREDIT_UTILIZATION,
        }
    ),
    LedgerEntity.INVOICE: frozenset(ReadModel),
    LedgerEntity.RECEIPT: frozenset(ReadModel),
    LedgerEntity.FOLLOW_UP: frozenset({ReadModel.DEBTOR_SNAPSHOT, ReadModel.FOLLOW_UP_STATS}),
    # Rules change categories only once a recalculation runs
    LedgerEntity.CATEGORY_RULE: frozenset(),
}


def invalidated_by(*entities: LedgerEntity) -> List[ReadModel]:
    """Union of read-models invalidated by mutating ``entities``, in declaration order"""
    stale = set()
    for entity in entities:
        stale |= INVALIDATES[entity]
    return [model for model in ReadModel if model in stale]

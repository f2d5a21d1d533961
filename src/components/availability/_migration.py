"""
MigrationAdapter - converts legacy catalog flags into rule drafts.

Mapping:
- is_hidden: unbounded date_range rule, state hidden, top priority, enabled
- is_preorder: date_range rule, state pre_order, legacy dates, pre-order
  settings stub

Migration fails closed: a pre-order draft stays disabled unless the legacy
data already carries the customer-facing message and delivery date, so a
half-configured pre-order never goes live. Drafts are returned, not saved.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from src.core.entities import (
    AvailabilityState,
    PreOrderSettings,
    RuleDraft,
    RuleType,
)

from ._config import DEFAULT_CONFIG, EngineConfig
from .models import LegacyFlags

logger = logging.getLogger(__name__)


def from_legacy(
    product_id: str,
    flags: LegacyFlags,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[RuleDraft]:
    """Build rule drafts for one product's legacy flags."""
    drafts: list[RuleDraft] = []

    if flags.is_hidden:
        drafts.append(
            RuleDraft(
                product_id=product_id,
                name="Hidden (migrated)",
                description="Migrated from legacy hidden flag",
                rule_type=RuleType.DATE_RANGE,
                state=AvailabilityState.HIDDEN,
                priority=config.hidden_priority,
                enabled=True,
                override_square=True,
            )
        )

    if flags.is_preorder:
        settings = PreOrderSettings(
            message=flags.preorder_message,
            expected_delivery_date=flags.expected_delivery_date,
        )
        drafts.append(
            RuleDraft(
                product_id=product_id,
                name="Pre-order (migrated)",
                description="Migrated from legacy pre-order flag",
                rule_type=RuleType.DATE_RANGE,
                state=AvailabilityState.PRE_ORDER,
                priority=0,
                enabled=settings.is_complete,
                start_date=flags.preorder_start_date,
                end_date=flags.preorder_end_date,
                pre_order_settings=settings,
                override_square=True,
            )
        )

    logger.info("Migrated %s: %d rule drafts", product_id, len(drafts))
    return drafts


def from_legacy_many(
    products: Mapping[str, LegacyFlags],
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> dict[str, list[RuleDraft]]:
    """Build rule drafts for a batch of products."""
    return {
        product_id: from_legacy(product_id, flags, config=config)
        for product_id, flags in products.items()
    }

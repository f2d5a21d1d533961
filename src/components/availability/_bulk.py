"""
BulkOperationProcessor - applies one rule mutation across many products.

Key behaviors:
- Request-level problems are reported before any product is touched
- Every product (and, on request, every variant) is an isolated unit; one
  unit's failure never aborts the others
- Read-validate-write for a product is serialized by a per-product lock
- Products may run in parallel on a thread pool (bulk_max_workers)
- Units that wrote anything invalidate the product's cached schedules, even
  when they fail part way; the failure lists the rule ids already written
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from uuid import uuid4

from src.core.entities import AvailabilityRule, RuleDraft

from ._config import DEFAULT_CONFIG, EngineConfig
from ._validator import build_rule, merge_draft, validate_bulk_request
from .models import (
    BulkFailure,
    BulkOperation,
    BulkResult,
    InvalidRuleError,
    RuleValidationError,
)
from .ports import (
    ClockPort,
    RuleRepoPort,
    ScheduleCachePort,
    TimeZonePort,
    VariantLookupPort,
)

logger = logging.getLogger(__name__)

# (unit id, parent product id for variants)
Unit = tuple[str, str | None]


def _new_rule_id() -> str:
    return str(uuid4())


def rule_matches_draft(rule: AvailabilityRule, draft: RuleDraft) -> bool:
    """Locate by id when the draft has one, else by name."""
    if draft.id:
        return rule.id == draft.id
    if draft.name:
        return rule.name == draft.name
    return False


class BulkOperationProcessor:
    """
    Bulk create/update/delete of availability rules.

    Returns a BulkResult describing partial failure instead of raising.
    """

    def __init__(
        self,
        repo: RuleRepoPort,
        variants: VariantLookupPort | None = None,
        cache: ScheduleCachePort | None = None,
        clock: ClockPort | None = None,
        zones: TimeZonePort | None = None,
        config: EngineConfig | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._repo = repo
        self._variants = variants
        self._cache = cache
        self._clock = clock
        self._zones = zones
        self._config = config or DEFAULT_CONFIG
        self._id_factory = id_factory or _new_rule_id
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _now_utc(self) -> datetime:
        if self._clock:
            return self._clock.now_utc()
        return datetime.now(UTC)

    def lock_for(self, product_id: str) -> threading.Lock:
        """Lock serializing read-validate-write for one product."""
        with self._locks_guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            return lock

    # --- Entry Point ---

    def apply(
        self,
        product_ids: Sequence[str],
        drafts: Sequence[RuleDraft] | None,
        operation: BulkOperation,
        apply_to_variants: bool = False,
    ) -> BulkResult:
        """
        Apply an operation to every product (and optionally its variants).

        Args:
            product_ids: Target products
            drafts: Rule drafts; optional for delete (no drafts = delete all)
            operation: create, update or delete
            apply_to_variants: Also apply to each product's variants

        Returns:
            BulkResult with succeeded unit ids, per-unit failures and
            request-level errors.
        """
        drafts = list(drafts or [])
        request_errors = validate_bulk_request(product_ids, operation, drafts, self._config)
        if request_errors:
            return BulkResult(errors=request_errors)

        failed: list[BulkFailure] = []
        units = self._expand_units(product_ids, apply_to_variants, failed)

        def run(unit: Unit) -> tuple[str | None, tuple[str, ...]]:
            return self._run_unit(unit[0], drafts, operation)

        workers = max(1, self._config.bulk_max_workers)
        if workers > 1 and len(units) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(run, units))
        else:
            outcomes = [run(unit) for unit in units]

        succeeded: list[str] = []
        for (unit_id, variant_of), (error, written) in zip(units, outcomes, strict=True):
            if error is None:
                succeeded.append(unit_id)
            else:
                failed.append(
                    BulkFailure(
                        product_id=unit_id,
                        error=error,
                        variant_of=variant_of,
                        written=written,
                    )
                )

        logger.info(
            "Bulk %s: %d succeeded, %d failed",
            operation,
            len(succeeded),
            len(failed),
        )
        return BulkResult(succeeded=succeeded, failed=failed)

    def _expand_units(
        self,
        product_ids: Sequence[str],
        apply_to_variants: bool,
        failed: list[BulkFailure],
    ) -> list[Unit]:
        units: list[Unit] = []
        for product_id in dict.fromkeys(product_ids):
            units.append((product_id, None))
            if not apply_to_variants or self._variants is None:
                continue
            try:
                variant_ids = self._variants.list_variant_ids(product_id)
            except Exception as e:
                logger.warning("Variant lookup failed for %s", product_id, exc_info=True)
                failed.append(
                    BulkFailure(
                        product_id=product_id,
                        error=f"Variant lookup failed: {e}",
                    )
                )
                continue
            units.extend((variant_id, product_id) for variant_id in variant_ids)
        return units

    # --- Units ---

    def _run_unit(
        self,
        product_id: str,
        drafts: list[RuleDraft],
        operation: BulkOperation,
    ) -> tuple[str | None, tuple[str, ...]]:
        """
        Run one unit under its product lock.

        Returns:
            Tuple of (error message or None, ids of rules written before
            the unit finished or failed).
        """
        written: list[str] = []
        error: str | None = None
        try:
            with self.lock_for(product_id):
                if operation == "create":
                    self._create(product_id, drafts, written)
                elif operation == "update":
                    self._update(product_id, drafts, written)
                else:
                    self._delete(product_id, drafts, written)
        except InvalidRuleError as e:
            error = str(e)
        except Exception as e:
            logger.warning("Bulk %s failed for %s", operation, product_id, exc_info=True)
            error = f"{type(e).__name__}: {e}"
        finally:
            # A partly written unit still changed the product's rules
            if self._cache is not None and (error is None or written):
                self._cache.invalidate_product(product_id)

        if error is not None and written:
            logger.warning(
                "Bulk %s for %s left %d rule(s) written: %s",
                operation,
                product_id,
                len(written),
                ", ".join(written),
            )
        return error, tuple(written)

    def _create(self, product_id: str, drafts: list[RuleDraft], written: list[str]) -> None:
        now = self._now_utc()
        rules = [
            build_rule(
                draft.model_copy(update={"product_id": product_id, "id": None}),
                rule_id=self._id_factory(),
                timestamp=now,
                now=now,
                config=self._config,
                zones=self._zones,
            )
            for draft in drafts
        ]
        # Nothing is written unless every draft is valid
        for rule in rules:
            self._repo.save_rule(rule)
            written.append(rule.id)

    def _update(self, product_id: str, drafts: list[RuleDraft], written: list[str]) -> None:
        now = self._now_utc()
        existing = self._repo.load_rules(product_id)
        rules = []
        for draft in drafts:
            target = next((r for r in existing if rule_matches_draft(r, draft)), None)
            if target is None:
                raise InvalidRuleError(
                    [
                        RuleValidationError(
                            code="rule_not_found",
                            message=f"No rule '{draft.id or draft.name}' on product {product_id}",
                            field="id" if draft.id else "name",
                        )
                    ]
                )
            rules.append(
                build_rule(
                    merge_draft(target, draft),
                    timestamp=now,
                    created_at=target.created_at,
                    now=now,
                    config=self._config,
                    zones=self._zones,
                )
            )
        for rule in rules:
            self._repo.save_rule(rule)
            written.append(rule.id)

    def _delete(self, product_id: str, drafts: list[RuleDraft], written: list[str]) -> None:
        existing = self._repo.load_rules(product_id)
        if drafts:
            targets = [r for r in existing if any(rule_matches_draft(r, d) for d in drafts)]
        else:
            targets = existing
        for rule in targets:
            self._repo.delete_rule(rule.id)
            written.append(rule.id)

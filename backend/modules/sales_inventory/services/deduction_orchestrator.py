# backend/modules/sales_inventory/services/deduction_orchestrator.py

"""
Sale-to-stock deduction pipeline.

One sale moves through EXPANDING -> RESOLVING -> VALIDATING -> DEDUCTING
and ends COMPLETED or FAILED. Lines are resolved concurrently, then every
(line, ingredient) pair is deducted concurrently; each phase joins all of
its tasks before the next begins. Every concurrent task opens its own
database session.

A FAILED sale is raised as SaleDeductionFailedError carrying the outcome.
Stock may have been partially mutated at that point; the ledger shows
exactly what was applied.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from core.inventory_models import MovementType
from ..config.deduction_config import StockDeductionConfig, get_stock_deduction_config
from ..enums.deduction_enums import DeductionState, ErrorKind, RecipeSource
from ..exceptions.inventory_exceptions import (
    AuthenticationMissingError,
    DeductionTimeoutError,
    InsufficientStockError,
    InventoryDeductionError,
    NoInventoryMappingError,
    NoRecipeFoundError,
    SaleDeductionFailedError,
)
from ..schemas.deduction_schemas import (
    AvailabilityReport,
    DeductionError,
    DeductionOutcome,
    DeductionSummary,
    LineResolution,
    ParsedProduct,
    ReversalOutcome,
    SaleItem,
    SaleLine,
    SalePreview,
    Shortfall,
)
from ..utils.inventory_logging import InventoryLogger, log_inventory_operation
from .addon_resolver import AddonResolver
from .audit_ledger import AuditLedger
from .availability_checker import AvailabilityChecker
from .catalog_resolver import CatalogResolver
from .combo_expander import ComboExpander
from .deduction_executor import DeductionExecutor
from .name_parser import KNOWN_BASE_PRODUCTS, parse_product_name

logger = logging.getLogger(__name__)


def error_from_exception(
    exc: BaseException,
    product_name: Optional[str] = None,
    line_index: Optional[int] = None,
    inventory_item_id: Optional[int] = None,
) -> DeductionError:
    """Convert a raised error into the structured form kept on an outcome"""
    if isinstance(exc, InventoryDeductionError) and exc.error_kind is not None:
        details = dict(exc.details)
        return DeductionError(
            kind=exc.error_kind,
            message=exc.message,
            product_name=product_name,
            line_index=line_index,
            inventory_item_id=inventory_item_id or details.get("inventory_item_id"),
            details=details,
        )

    return DeductionError(
        kind=ErrorKind.INTERNAL_ERROR,
        message=f"{exc.__class__.__name__}: {exc}",
        product_name=product_name,
        line_index=line_index,
        inventory_item_id=inventory_item_id,
    )


def _discard_result(task: asyncio.Task):
    """Done callback for tasks whose result is no longer wanted"""
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Discarded task failed: {task.exception()!r}")


class _SaleRun:
    """Mutable bookkeeping for one sale while it moves through the pipeline"""

    def __init__(
        self,
        sale_ref: str,
        actor_id: int,
        store_id: int,
        timeout_seconds: Optional[float],
        inventory_logger: InventoryLogger,
    ):
        self.sale_ref = sale_ref
        self.actor_id = actor_id
        self.store_id = store_id
        self.timeout_seconds = timeout_seconds
        self.inventory_logger = inventory_logger

        self.started = time.perf_counter()
        loop = asyncio.get_running_loop()
        self._loop = loop
        self.deadline = loop.time() + timeout_seconds if timeout_seconds else None

        self.state = DeductionState.EXPANDING
        self.errors: List[DeductionError] = []
        self.warnings: List[str] = []
        self.shortfalls: List[Shortfall] = []
        self.succeeded: List[DeductionSummary] = []

    def transition(self, state: DeductionState):
        self.inventory_logger.log_state_transition(
            self.sale_ref, self.state.value, state.value
        )
        self.state = state

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - self._loop.time(), 0.0)

    def expired(self) -> bool:
        return self.deadline is not None and self._loop.time() >= self.deadline

    def record_timeout(self):
        exc = DeductionTimeoutError(
            self.sale_ref, self.timeout_seconds, self.state.value
        )
        self.errors.append(error_from_exception(exc))

    def add_shortfalls(self, shortfalls: Iterable[Shortfall]):
        known = {shortfall.inventory_item_id for shortfall in self.shortfalls}
        for shortfall in shortfalls:
            if shortfall.inventory_item_id not in known:
                self.shortfalls.append(shortfall)
                known.add(shortfall.inventory_item_id)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000

    def finish(self) -> DeductionOutcome:
        if self.errors:
            self.transition(DeductionState.FAILED)
        else:
            self.transition(DeductionState.COMPLETED)

        return DeductionOutcome(
            sale_ref=self.sale_ref,
            store_id=self.store_id,
            actor_id=self.actor_id,
            state=self.state,
            success=self.state == DeductionState.COMPLETED,
            succeeded_items=self.succeeded,
            errors=self.errors,
            warnings=self.warnings,
            shortfalls=self.shortfalls,
            processing_time_ms=self.elapsed_ms,
        )


class DeductionOrchestrator:
    """Single entry point for turning sales into stock mutations"""

    def __init__(
        self,
        session_factory: sessionmaker,
        config: Optional[StockDeductionConfig] = None,
        catalog_resolver: Optional[CatalogResolver] = None,
        executor: Optional[DeductionExecutor] = None,
        known_bases: Sequence[str] = KNOWN_BASE_PRODUCTS,
    ):
        self.session_factory = session_factory
        self.config = config or get_stock_deduction_config()
        self.catalog_resolver = catalog_resolver or CatalogResolver()
        self.addon_resolver = AddonResolver(self.catalog_resolver)
        self.combo_expander = ComboExpander(self.catalog_resolver)
        self.availability_checker = AvailabilityChecker(self.config)
        self.audit_ledger = AuditLedger()
        self.executor = executor or DeductionExecutor(
            session_factory, self.audit_ledger, self.config
        )
        self.known_bases = tuple(known_bases)
        self.inventory_logger = InventoryLogger()

    # Public operations

    @log_inventory_operation("sale_deduction")
    async def process_sale(
        self,
        sale_ref: str,
        actor_id: Optional[int],
        store_id: int,
        items: Sequence[SaleItem],
        timeout_seconds: Optional[float] = None,
    ) -> DeductionOutcome:
        """
        Deduct stock for a completed sale.

        Replaying a sale_ref deducts again; de-duplication belongs upstream.

        Returns:
            The COMPLETED outcome

        Raises:
            AuthenticationMissingError: actor_id is missing
            SaleDeductionFailedError: the sale ended FAILED; the caller must
                not treat its inventory effect as applied
        """
        if actor_id is None:
            raise AuthenticationMissingError(sale_ref)

        if timeout_seconds is None:
            timeout_seconds = self.config.DEFAULT_TIMEOUT_SECONDS

        run = _SaleRun(sale_ref, actor_id, store_id, timeout_seconds, self.inventory_logger)
        lines = self._build_lines(store_id, items)
        self.inventory_logger.log_sale_start(sale_ref, actor_id, store_id, len(lines))

        resolutions = await self._expand_and_resolve(run, lines)

        if resolutions is not None and self._may_deduct(run):
            report = await self._validate(run, resolutions)
            if report is not None and self._may_deduct(run, report):
                run.transition(DeductionState.DEDUCTING)
                await self._deduct(run, resolutions)

        outcome = run.finish()
        if not outcome.success:
            self.inventory_logger.log_sale_failed(
                sale_ref,
                [error.model_dump(mode="json", exclude={"details"}) for error in outcome.errors],
                len(outcome.succeeded_items),
                run.elapsed_ms,
            )
            raise SaleDeductionFailedError(outcome)

        self.inventory_logger.log_sale_completed(
            sale_ref, len(outcome.succeeded_items), len(outcome.warnings), run.elapsed_ms
        )
        return outcome

    async def preview_sale(
        self, sale_ref: str, store_id: int, items: Sequence[SaleItem]
    ) -> SalePreview:
        """Expand, resolve and validate a sale without touching stock"""
        run = _SaleRun(sale_ref, 0, store_id, None, self.inventory_logger)
        lines = self._build_lines(store_id, items)

        resolutions = await self._expand_and_resolve(run, lines)
        report = None
        if resolutions:
            report = await self._validate(run, resolutions)

        return SalePreview(
            sale_ref=sale_ref,
            store_id=store_id,
            state=run.state,
            can_proceed=not run.errors and (report is None or report.can_proceed),
            lines=resolutions or [],
            availability=report,
            errors=run.errors,
            warnings=run.warnings,
        )

    @log_inventory_operation("sale_reversal")
    async def reverse_sale(
        self, sale_ref: str, actor_id: Optional[int], reason: str
    ) -> ReversalOutcome:
        """
        Compensate a sale: restore every sale entry not yet reversed and
        append a reversal entry for each. Calling it again reverses nothing.
        """
        if actor_id is None:
            raise AuthenticationMissingError(sale_ref)

        async with self.session_factory() as db:
            records = await self.audit_ledger.get_records_for_sale(
                db, sale_ref, MovementType.SALE
            )
            reversed_ids = await self.audit_ledger.get_reversed_record_ids(db, sale_ref)

        pending = [record for record in records if record.id not in reversed_ids]
        already_reversed = len(records) - len(pending)

        # restore() returns None for entries a concurrent call already reversed
        results = await asyncio.gather(
            *(self.executor.restore(record, actor_id, reason) for record in pending),
            return_exceptions=True,
        )

        outcome = ReversalOutcome(
            sale_ref=sale_ref, actor_id=actor_id, success=True,
            already_reversed=already_reversed
        )
        for record, result in zip(pending, results):
            if isinstance(result, BaseException):
                outcome.errors.append(
                    error_from_exception(
                        result, record.product_name, inventory_item_id=record.inventory_item_id
                    )
                )
            elif result is None:
                outcome.already_reversed += 1
            else:
                outcome.reversed_items.append(result)
        outcome.success = not outcome.errors

        self.inventory_logger.log_reversal(
            sale_ref, actor_id, reason, len(outcome.reversed_items), outcome.already_reversed
        )
        return outcome

    # Phases

    def _build_lines(self, store_id: int, items: Sequence[SaleItem]) -> List[SaleLine]:
        return [
            SaleLine(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                store_id=store_id,
            )
            for item in items
        ]

    async def _within_deadline(self, run: _SaleRun, coro: Awaitable[Any]) -> Any:
        """
        Await coro as a task under the run's deadline. On expiry the task is
        left to finish on its own, its result discarded, and None returned.
        """
        task = asyncio.ensure_future(coro)
        done, _ = await asyncio.wait({task}, timeout=run.remaining())
        if not done:
            task.add_done_callback(_discard_result)
            run.record_timeout()
            return None
        return task.result()

    async def _expand_and_resolve(
        self, run: _SaleRun, lines: List[SaleLine]
    ) -> Optional[List[LineResolution]]:
        """EXPANDING then RESOLVING; None when the sale cannot go further"""
        run.transition(DeductionState.EXPANDING)
        try:
            expanded = await self._within_deadline(run, self._expand(lines))
        except InventoryDeductionError as e:
            logger.error(f"Combo expansion failed for sale {run.sale_ref}: {e}")
            run.errors.append(error_from_exception(e))
            return None
        if expanded is None:
            return None

        run.transition(DeductionState.RESOLVING)
        tasks = [
            asyncio.ensure_future(self._resolve_line(index, line))
            for index, line in enumerate(expanded)
        ]
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks, timeout=run.remaining())
        if pending:
            for task in pending:
                task.add_done_callback(_discard_result)
            run.record_timeout()
            return None

        resolutions: List[LineResolution] = []
        for index, (line, task) in enumerate(zip(expanded, tasks)):
            exc = task.exception()
            if exc is not None:
                self.inventory_logger.log_resolution_failure(
                    run.sale_ref, index, line.product_name, exc
                )
                run.errors.append(error_from_exception(exc, line.product_name, index))
                continue
            resolution = task.result()
            run.warnings.extend(resolution.warnings)
            resolutions.append(resolution)

        return resolutions

    async def _expand(self, lines: List[SaleLine]) -> List[SaleLine]:
        async with self.session_factory() as db:
            return await self.combo_expander.expand(db, lines)

    def _is_mix_and_match(self, parsed: ParsedProduct, line: SaleLine) -> bool:
        # "Salt and Pepper Fries" trips the connective check but has nothing to split
        return parsed.is_mix_and_match and (
            bool(parsed.addons) or parsed.base_name != line.product_name.strip()
        )

    async def _resolve_line(self, index: int, line: SaleLine) -> LineResolution:
        parsed = parse_product_name(line.product_name, self.known_bases)
        resolution = LineResolution(line_index=index, line=line, parsed=parsed)
        resolver = self.catalog_resolver

        async with self.session_factory() as db:
            match = None
            if line.product_id is not None:
                match = await resolver.resolve_direct(db, line.store_id, line.product_id)

            if match is not None:
                resolution.source = match.source
                resolution.requirements = match.requirements

            elif self._is_mix_and_match(parsed, line):
                match = await resolver.resolve_by_name(db, line.store_id, parsed.base_name)
                if match is None:
                    raise NoRecipeFoundError(
                        parsed.base_name, line.store_id, line.product_id
                    )
                addons, warnings = await self.addon_resolver.resolve_addons(
                    db, line.store_id, parsed.addons
                )
                resolution.source = match.source
                resolution.requirements = match.requirements + addons
                resolution.warnings.extend(warnings)

            else:
                try:
                    match = await resolver.resolve_recipe(
                        db, line.store_id, line.product_name
                    )
                    resolution.source = match.source
                    resolution.requirements = match.requirements
                except NoRecipeFoundError:
                    if await resolver.is_recipe_backed(
                        db, line.store_id, line.product_name, line.product_id
                    ):
                        raise
                    resolution.source = RecipeSource.DIRECT_INVENTORY
                    resolution.requirements = await resolver.resolve_direct_inventory(
                        db, line.store_id, line.product_name
                    )

        for requirement in resolution.requirements:
            if not requirement.is_mapped and not requirement.is_addon:
                resolution.warnings.append(
                    f"Ingredient '{requirement.ingredient_name}' of '{line.product_name}' "
                    f"has no inventory item in store {line.store_id}; not deducted"
                )

        if not resolution.mapped_requirements:
            raise NoInventoryMappingError(
                line.product_name,
                line.store_id,
                f"None of its {len(resolution.requirements)} ingredient(s) map to inventory.",
            )

        return resolution

    def _may_deduct(
        self, run: _SaleRun, report: Optional[AvailabilityReport] = None
    ) -> bool:
        if run.expired():
            run.record_timeout()
            return False
        if run.errors and self.config.ABORT_ON_RESOLUTION_ERRORS:
            return False
        if report is not None and not report.can_proceed and self.config.BLOCK_ON_SHORTFALL:
            return False
        return True

    async def _validate(
        self, run: _SaleRun, resolutions: List[LineResolution]
    ) -> Optional[AvailabilityReport]:
        run.transition(DeductionState.VALIDATING)
        report = await self._within_deadline(run, self._check_availability(resolutions))
        if report is None or report.can_proceed:
            return report

        blocking = self.config.BLOCK_ON_SHORTFALL
        run.add_shortfalls(report.shortfalls)
        self.inventory_logger.log_shortfalls(
            run.sale_ref,
            [{**shortfall.model_dump(), "shortage": shortfall.shortage}
             for shortfall in report.shortfalls],
            blocking,
        )

        if blocking:
            run.errors.append(
                error_from_exception(InsufficientStockError(report.shortfalls, run.sale_ref))
            )
        else:
            for shortfall in report.shortfalls:
                run.warnings.append(
                    f"'{shortfall.item_name}' needs {shortfall.required} {shortfall.unit} "
                    f"but only {shortfall.available} on hand"
                )
        return report

    async def _check_availability(
        self, resolutions: List[LineResolution]
    ) -> AvailabilityReport:
        async with self.session_factory() as db:
            return await self.availability_checker.check_resolutions(db, resolutions)

    async def _deduct(self, run: _SaleRun, resolutions: List[LineResolution]):
        precision = self.config.QUANTITY_PRECISION
        jobs = []
        for resolution in resolutions:
            line = resolution.line
            for requirement in resolution.mapped_requirements:
                quantity = round(requirement.quantity_per_unit * line.quantity, precision)
                task = asyncio.ensure_future(
                    self.executor.deduct(
                        requirement.inventory_item_id,
                        quantity,
                        run.sale_ref,
                        run.actor_id,
                        line.store_id,
                        product_name=line.product_name,
                        ingredient_name=requirement.ingredient_name,
                        line_index=resolution.line_index,
                    )
                )
                jobs.append((resolution, requirement, task))

        if not jobs:
            return

        tasks = [task for _, _, task in jobs]
        _, pending = await asyncio.wait(tasks, timeout=run.remaining())
        if pending:
            # Mutations are never cancelled; wait them out, then fail the sale
            run.record_timeout()
            await asyncio.wait(pending)

        for resolution, requirement, task in jobs:
            exc = task.exception()
            if exc is None:
                run.succeeded.append(task.result())
                continue

            if isinstance(exc, InsufficientStockError):
                run.add_shortfalls(exc.items)
            self.inventory_logger.log_deduction_failed(
                run.sale_ref, requirement.inventory_item_id, exc
            )
            run.errors.append(
                error_from_exception(
                    exc,
                    resolution.line.product_name,
                    resolution.line_index,
                    requirement.inventory_item_id,
                )
            )

        if self.config.ENABLE_LOW_STOCK_WARNINGS:
            self._add_low_stock_warnings(run)

    def _add_low_stock_warnings(self, run: _SaleRun):
        lowest: Dict[int, DeductionSummary] = {}
        for summary in run.succeeded:
            current = lowest.get(summary.inventory_item_id)
            if current is None or summary.new_total < current.new_total:
                lowest[summary.inventory_item_id] = summary

        for item_id, summary in sorted(lowest.items()):
            if summary.is_low_stock:
                self.inventory_logger.log_low_stock(
                    item_id, summary.item_name, summary.new_total, summary.minimum_threshold
                )
                run.warnings.append(
                    f"Low stock: '{summary.item_name}' at {summary.new_total} {summary.unit} "
                    f"(threshold {summary.minimum_threshold})"
                )

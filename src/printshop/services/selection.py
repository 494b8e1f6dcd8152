"""Selection Committer - writes supplier choices onto quote items.

Every mutation here runs in one transaction: item updates and the quote's
recomputed totals commit together or not at all. Item writes are flushed
before the items are re-read for totals, so the totals include every
selection committed by a concurrent request. Inputs are validated before
the first write.
"""

import logging
import math
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.errors import QuoteItemMismatchError, ValidationError
from printshop.domain.models import Quote, QuoteItem
from printshop.domain.schemas import SelectionItemIn
from printshop.infra.stores import QuoteStore, write_transaction
from printshop.services.recommendations import RecommendationGenerator

logger = logging.getLogger(__name__)


def calculate_customer_price(supplier_cost: float, markup_percentage: float) -> float:
    """Cost plus markup, rounded half-up to a whole currency unit."""
    if not supplier_cost or supplier_cost <= 0:
        return 0.0
    return float(math.floor(supplier_cost * (1 + markup_percentage / 100) + 0.5))


def compute_quote_totals(items: Iterable[QuoteItem]) -> dict:
    """Quote-level aggregates from line items (unit value x quantity)."""
    total_cost = 0.0
    final_value = 0.0
    for item in items:
        qty = item.quantity or 1
        total_cost += (item.supplier_cost or 0.0) * qty
        final_value += (item.customer_price or 0.0) * qty
    profit = final_value - total_cost
    return {
        "total_supplier_cost": total_cost,
        "final_value": final_value,
        "profit": profit,
        "margin_pct": round(profit / final_value * 100, 2) if final_value else 0.0,
    }


def _check_non_negative(label: str, value: Optional[float]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{label} cannot be negative")


class SelectionCommitter:
    """Commit supplier selections and keep quote totals consistent."""

    def __init__(
        self,
        db: AsyncSession,
        default_markup: float = 0.0,
        generator: Optional[RecommendationGenerator] = None,
    ):
        self.db = db
        self.default_markup = default_markup
        self.quotes = QuoteStore(db)
        self.generator = generator

    async def _apply_totals(self, quote: Quote) -> dict:
        items = await self.quotes.get_items(quote.id)
        totals = compute_quote_totals(items)
        quote.total_supplier_cost = totals["total_supplier_cost"]
        quote.final_value = totals["final_value"]
        return totals

    # ------------------------------------------------------------------
    # Supplier selection
    # ------------------------------------------------------------------

    async def select_supplier_for_items(
        self,
        quote_id: int,
        supplier_id: int,
        items: list,
        markup_percentage: Optional[float] = None,
    ) -> dict:
        """Assign ``supplier_id`` to the given items and recompute totals.

        Returns ``{"success": False}`` when the quote does not exist.
        Re-running with identical arguments leaves the same persisted state.
        """
        markup = self.default_markup if markup_percentage is None else markup_percentage
        selections = [
            s if isinstance(s, SelectionItemIn) else SelectionItemIn.model_validate(s) for s in items
        ]
        _check_non_negative("Markup percentage", markup)
        if not selections:
            raise ValidationError("At least one item must be selected")
        for s in selections:
            _check_non_negative("Price per unit", s.price_per_unit)
            _check_non_negative("Delivery days", s.delivery_days)

        async with write_transaction(self.db, "select_supplier_for_items"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return {"success": False, "error": "Quote not found", "updated_items": []}

            by_id = {item.id: item for item in await self.quotes.get_items(quote_id)}
            for s in selections:
                if s.quote_item_id not in by_id:
                    raise QuoteItemMismatchError(quote_id, s.quote_item_id)

            for s in selections:
                item = by_id[s.quote_item_id]
                item.supplier_id = supplier_id
                item.supplier_cost = s.price_per_unit
                item.customer_price = calculate_customer_price(s.price_per_unit, markup)
                item.delivery_days = s.delivery_days
                item.is_manual_price = False
            await self.db.flush()

            totals = await self._apply_totals(quote)

        logger.info(
            "Quote %s: supplier %s selected for %d items (markup %.1f%%), final value %.2f",
            quote_id, supplier_id, len(selections), markup, totals["final_value"],
        )
        return {
            "success": True,
            "quote_id": quote_id,
            "supplier_id": supplier_id,
            "updated_items": [s.quote_item_id for s in selections],
            "totals": totals,
        }

    # ------------------------------------------------------------------
    # Totals and manual pricing
    # ------------------------------------------------------------------

    async def recalculate_quote_totals(self, quote_id: int) -> Optional[dict]:
        async with write_transaction(self.db, "recalculate_quote_totals"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return None
            totals = await self._apply_totals(quote)
        logger.info("Quote %s totals recalculated: cost %.2f, value %.2f",
                    quote_id, totals["total_supplier_cost"], totals["final_value"])
        return totals

    async def update_item_pricing(
        self,
        quote_item_id: int,
        supplier_cost: Optional[float] = None,
        customer_price: Optional[float] = None,
        markup_percentage: Optional[float] = None,
    ) -> Optional[dict]:
        """Override one item's pricing and recompute its quote's totals.

        An explicit ``customer_price`` marks the item as manually priced.
        Otherwise the price is re-derived from the cost and markup and the
        manual flag is cleared.
        """
        _check_non_negative("Supplier cost", supplier_cost)
        _check_non_negative("Customer price", customer_price)
        _check_non_negative("Markup percentage", markup_percentage)
        if supplier_cost is None and customer_price is None and markup_percentage is None:
            raise ValidationError("Nothing to update")

        existing = await self.quotes.get_item(quote_item_id)
        if existing is None:
            return None
        quote_id = existing.quote_id

        async with write_transaction(self.db, "update_item_pricing"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return None
            items = {i.id: i for i in await self.quotes.get_items(quote_id)}
            item = items.get(quote_item_id)
            if item is None:
                return None

            if supplier_cost is not None:
                item.supplier_cost = supplier_cost
            if customer_price is not None:
                item.customer_price = customer_price
                item.is_manual_price = True
            else:
                markup = self.default_markup if markup_percentage is None else markup_percentage
                item.customer_price = calculate_customer_price(item.supplier_cost or 0.0, markup)
                item.is_manual_price = False
            await self.db.flush()

            totals = await self._apply_totals(quote)

        logger.info("Quote item %s repriced (manual=%s)", quote_item_id, item.is_manual_price)
        return {
            "quote_item_id": quote_item_id,
            "quote_id": quote_id,
            "supplier_cost": item.supplier_cost,
            "customer_price": item.customer_price,
            "is_manual_price": item.is_manual_price,
            "totals": totals,
        }

    # ------------------------------------------------------------------
    # Auto-populate
    # ------------------------------------------------------------------

    async def auto_populate(self, quote_id: int, markup_percentage: Optional[float] = None) -> dict:
        """Assign the top-ranked supplier to every unpriced item.

        Items that already have a supplier keep it; their price is re-derived
        from the markup unless it was set manually.
        """
        markup = self.default_markup if markup_percentage is None else markup_percentage
        _check_non_negative("Markup percentage", markup)

        quote = await self.quotes.get_quote_by_id(quote_id)
        if quote is None:
            return {"success": False, "error": "Quote not found"}

        unpriced = [
            {"size_quantity_id": i.size_quantity_id, "quantity": i.quantity, "quote_item_id": i.id}
            for i in await self.quotes.get_items(quote_id)
            if i.supplier_id is None
        ]
        generator = self.generator or RecommendationGenerator(self.db)
        recommendations = await generator.generate_recommendations(unpriced) if unpriced else []
        top_choice = {
            rec.quote_item_id: rec.suppliers[0] for rec in recommendations if rec.suppliers
        }

        populated, skipped = [], []
        async with write_transaction(self.db, "auto_populate"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return {"success": False, "error": "Quote not found"}

            for item in await self.quotes.get_items(quote_id):
                if item.supplier_id is None:
                    choice = top_choice.get(item.id)
                    if choice is None:
                        skipped.append(item.id)
                        continue
                    item.supplier_id = choice.supplier_id
                    item.supplier_cost = choice.price_per_unit
                    item.delivery_days = choice.delivery_days
                    item.is_manual_price = False
                    populated.append(item.id)
                if not item.is_manual_price:
                    item.customer_price = calculate_customer_price(item.supplier_cost or 0.0, markup)
            await self.db.flush()

            totals = await self._apply_totals(quote)

        logger.info(
            "Quote %s auto-populated: %d items assigned, %d without suppliers",
            quote_id, len(populated), len(skipped),
        )
        return {
            "success": True,
            "quote_id": quote_id,
            "populated_items": populated,
            "skipped_items": skipped,
            "totals": totals,
        }

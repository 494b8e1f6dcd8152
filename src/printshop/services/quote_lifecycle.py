"""Quote Lifecycle Manager - quote requests, revisions, status changes, ratings.

Revisions build a supersession chain: the revised quote becomes
``superseded`` and a new draft with ``version + 1`` and
``parent_quote_id`` pointing back is created with cloned items, in the same
transaction. A superseded quote therefore always has exactly one child.

Not-found quotes resolve to ``None`` rather than raising.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.enums import QuoteStatus, UserRole
from printshop.domain.errors import (
    ConcurrentUpdateError,
    MissingRejectionReasonError,
    QuoteNotSendableError,
    RatingOutOfRangeError,
    ValidationError,
)
from printshop.domain.models import Quote, QuoteItem
from printshop.domain.schemas import QuoteItemIn
from printshop.infra.stores import QuoteStore, SupplierStore, write_transaction
from printshop.services.quote_state_machine import RATEABLE_STATES, QuoteStateMachine

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 10

# Quote item columns carried over to a revision (courier tracking is not)
CLONED_ITEM_FIELDS = (
    "size_quantity_id",
    "quantity",
    "supplier_id",
    "supplier_cost",
    "customer_price",
    "delivery_days",
    "is_manual_price",
    "is_upsell",
)


def validate_rating(rating) -> int:
    """Ratings are whole numbers from 1 to 10."""
    try:
        value = float(rating)
    except (TypeError, ValueError):
        raise RatingOutOfRangeError(rating)
    if not value.is_integer() or not MIN_RATING <= value <= MAX_RATING:
        raise RatingOutOfRangeError(rating)
    return int(value)


def _parse_status(status) -> QuoteStatus:
    try:
        return QuoteStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown quote status: {status}")


class QuoteLifecycleService:
    """Owns quote creation, the version chain and status transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.quotes = QuoteStore(db)
        self.users = SupplierStore(db)
        self.state_machine = QuoteStateMachine()

    async def _claim(self, quote_id: int, expected: dict, **values) -> None:
        """Apply ``values`` if the quote still matches what was validated, else abort."""
        if not await self.quotes.compare_and_set(quote_id, expected, **values):
            logger.warning("Quote %s changed concurrently (expected %s)", quote_id, expected)
            raise ConcurrentUpdateError("Quote", quote_id)

    # ------------------------------------------------------------------
    # Creation and revision
    # ------------------------------------------------------------------

    async def request_quote(
        self,
        customer_id: int,
        items: Iterable,
        employee_id: Optional[int] = None,
    ) -> Optional[Quote]:
        """Create a version-1 draft with no parent. ``None`` if the customer is unknown."""
        lines = [i if isinstance(i, QuoteItemIn) else QuoteItemIn.model_validate(i) for i in items]

        customer = await self.users.get_user_by_id(customer_id)
        if customer is None:
            return None

        async with write_transaction(self.db, "request_quote"):
            quote = Quote(
                customer_id=customer_id,
                employee_id=employee_id,
                status=QuoteStatus.DRAFT.value,
                version=1,
                parent_quote_id=None,
                total_supplier_cost=0.0,
                final_value=0.0,
            )
            quote.items = [
                QuoteItem(
                    size_quantity_id=line.size_quantity_id,
                    quantity=line.quantity,
                    is_upsell=line.is_upsell,
                    customer_price=0.0,
                )
                for line in lines
            ]
            self.db.add(quote)

        logger.info("Quote %s requested by customer %s (%d items)", quote.id, customer_id, len(lines))
        return quote

    async def revise_quote(self, quote_id: int, employee_id: Optional[int] = None) -> Optional[Quote]:
        """Supersede ``quote_id`` and return its new draft successor."""
        async with write_transaction(self.db, "revise_quote"):
            old = await self.quotes.lock_quote(quote_id)
            if old is None:
                return None
            self.state_machine.validate_supersede(QuoteStatus(old.status))
            await self._claim(quote_id, {"status": old.status}, status=QuoteStatus.SUPERSEDED.value)

            new = Quote(
                customer_id=old.customer_id,
                employee_id=employee_id if employee_id is not None else old.employee_id,
                status=QuoteStatus.DRAFT.value,
                version=old.version + 1,
                parent_quote_id=old.id,
                total_supplier_cost=old.total_supplier_cost,
                final_value=old.final_value,
            )
            new.items = [
                QuoteItem(**{f: getattr(item, f) for f in CLONED_ITEM_FIELDS})
                for item in await self.quotes.get_items(old.id)
            ]
            self.db.add(new)

        logger.info("Quote %s revised -> %s (v%d)", quote_id, new.id, new.version)
        return new

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def update_status(
        self,
        quote_id: int,
        status,
        actor: UserRole = UserRole.EMPLOYEE,
        reason: Optional[str] = None,
    ) -> Optional[Quote]:
        target = _parse_status(status)
        if target == QuoteStatus.REJECTED and not (reason and reason.strip()):
            raise MissingRejectionReasonError()

        async with write_transaction(self.db, "update_status"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return None
            current = QuoteStatus(quote.status)
            self.state_machine.validate_transition(current, target, actor)
            # An admin forcing a non-draft quote to sent skips the draft checks
            if target == QuoteStatus.SENT and current == QuoteStatus.DRAFT:
                self._check_sendable(quote, await self.quotes.get_items(quote_id))

            values = {"status": target.value}
            if target == QuoteStatus.REJECTED:
                values["rejection_reason"] = reason.strip()
            await self._claim(quote_id, {"status": current.value}, **values)

        logger.info("Quote %s status %s -> %s by %s", quote_id, current.value, target.value, actor.value)
        return quote

    async def reject_quote(
        self,
        quote_id: int,
        reason: Optional[str],
        actor: UserRole = UserRole.EMPLOYEE,
    ) -> Optional[Quote]:
        return await self.update_status(quote_id, QuoteStatus.REJECTED, actor, reason)

    @staticmethod
    def _check_sendable(quote: Quote, items: list[QuoteItem]) -> None:
        if quote.status != QuoteStatus.DRAFT.value:
            raise QuoteNotSendableError(f"Only draft quotes can be sent (quote is {quote.status})")
        if not items:
            raise QuoteNotSendableError("Quote has no items")
        unpriced = [i.id for i in items if not i.customer_price or i.customer_price <= 0]
        if unpriced:
            raise QuoteNotSendableError(f"Items without a customer price: {unpriced}")

    async def send_to_customer(self, quote_id: int, actor: UserRole = UserRole.EMPLOYEE) -> Optional[Quote]:
        """Move a fully priced draft to ``sent``."""
        async with write_transaction(self.db, "send_to_customer"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return None
            self._check_sendable(quote, await self.quotes.get_items(quote_id))
            self.state_machine.validate_transition(QuoteStatus.DRAFT, QuoteStatus.SENT, actor)
            await self._claim(quote_id, {"status": QuoteStatus.DRAFT.value}, status=QuoteStatus.SENT.value)

        logger.info("Quote %s sent to customer %s", quote_id, quote.customer_id)
        return quote

    # ------------------------------------------------------------------
    # Rating
    # ------------------------------------------------------------------

    async def rate_deal(self, quote_id: int, rating) -> Optional[Quote]:
        """Record the deal rating and fold it into the customer's running totals.

        Re-rating replaces the earlier contribution instead of adding a second one.
        """
        value = validate_rating(rating)

        async with write_transaction(self.db, "rate_deal"):
            quote = await self.quotes.lock_quote(quote_id)
            if quote is None:
                return None
            if QuoteStatus(quote.status) not in RATEABLE_STATES:
                raise ValidationError(f"A {quote.status} quote cannot be rated")

            previous = quote.deal_rating
            await self._claim(
                quote_id, {"status": quote.status, "deal_rating": previous}, deal_rating=value,
            )
            await self.quotes.accumulate_customer_rating(
                quote.customer_id,
                points=value - (previous or 0),
                count_delta=0 if previous is not None else 1,
            )

        logger.info("Quote %s rated %d (was %s)", quote_id, value, previous)
        return quote

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_quote(self, quote_id: int) -> Optional[Quote]:
        return await self.quotes.get_quote_by_id(quote_id)

    async def get_quote_history(self, quote_id: int) -> list[Quote]:
        """Every version in ``quote_id``'s chain, oldest first."""
        start = await self.quotes.get_quote_by_id(quote_id)
        if start is None:
            return []

        # Walk up to the root; the seen set guards against corrupt cycles
        seen = {start.id}
        root = start
        while root.parent_quote_id is not None and root.parent_quote_id not in seen:
            parent = await self.quotes.get_quote_by_id(root.parent_quote_id)
            if parent is None:
                break
            seen.add(parent.id)
            root = parent

        # Walk down through parent back-references
        chain = {root.id: root}
        frontier = [root.id]
        while frontier:
            children = await self.quotes.get_children(frontier)
            frontier = []
            for child in children:
                if child.id not in chain:
                    chain[child.id] = child
                    frontier.append(child.id)

        return sorted(chain.values(), key=lambda q: (q.version, q.id))

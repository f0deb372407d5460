"""
Sales statistics over the full order history.

Statistics are a pure read. They take no exclusive locks and may lag
orders that are still being fulfilled.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from fulfillment.models import GenrePopularity, SalesStatistics, quantize_money
from fulfillment.observability import (
    ATTR_DB_SYSTEM,
    ATTR_ITEM_COUNT,
    Tracer,
    create_tracer,
)
from fulfillment.stores.interface import OrderRepository

logger = logging.getLogger(__name__)

ZERO_MONEY = Decimal("0.00")


def rank_genres(
    counts: Iterable[GenrePopularity],
) -> tuple[GenrePopularity | None, GenrePopularity | None]:
    """
    Pick the most and least popular genres.

    Only genres with at least one purchase event take part. Ties go to the
    genre whose id sorts first as a string, for both ends of the ranking.

    Returns:
        (most popular, least popular), or (None, None) if nothing was bought
    """
    ranked = [genre for genre in counts if genre.purchase_count > 0]
    if not ranked:
        return None, None
    most = min(ranked, key=lambda g: (-g.purchase_count, str(g.genre_id)))
    least = min(ranked, key=lambda g: (g.purchase_count, str(g.genre_id)))
    return most, least


class StatisticsAggregator:
    """
    Computes SalesStatistics from an OrderRepository.

    Example:
        >>> stats = await StatisticsAggregator(store).compute_statistics()
        >>> stats.average_order_value
        Decimal('25.00')
    """

    def __init__(
        self,
        repository: OrderRepository,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._repository = repository
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def average_order_value(self) -> Decimal:
        """Mean order total, rounded half-up to cents. 0.00 without orders."""
        total = Decimal("0")
        orders = 0
        async for _order_id, order_total in self._repository.sum_subtotals_grouped_by_order():
            total += order_total
            orders += 1
        if orders == 0:
            return ZERO_MONEY
        return quantize_money(total / orders)

    async def compute_statistics(self) -> SalesStatistics:
        with self._tracer.span(
            "fulfillment.statistics.compute",
            {ATTR_DB_SYSTEM: getattr(self._repository, "backend_name", "unknown")},
        ) as span:
            total_orders = await self._repository.count_orders()
            average = await self.average_order_value()
            genre_counts = await self._repository.count_purchase_events_by_genre()
            most, least = rank_genres(genre_counts)

            if span is not None:
                span.set_attribute(ATTR_ITEM_COUNT, len(genre_counts))

        logger.debug(
            "Computed statistics over %d orders (%d genres with purchases)",
            total_orders,
            len(genre_counts),
        )
        return SalesStatistics(
            total_orders=total_orders,
            average_order_value=average,
            most_popular_genre=most,
            least_popular_genre=least,
        )


__all__ = ["StatisticsAggregator", "rank_genres"]

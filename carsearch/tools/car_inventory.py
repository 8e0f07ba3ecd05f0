# carsearch/tools/car_inventory.py
from typing import List
from uuid import UUID
import logging

from sqlalchemy import text

from carsearch.core.errors import CarNotFound
from carsearch.schemas.search import CarDetail, CarPage, CarSummary, SearchResult, SearchSpecification
from carsearch.services.query_builder import DETAIL_COLUMNS, compile_search_query

logger = logging.getLogger(__name__)


class CarInventory:
    def __init__(self, session_factory):
        # Turns outlive the HTTP request, so every search opens its own session
        self.session_factory = session_factory

    async def search(self, spec: SearchSpecification) -> SearchResult:
        """
        Runs the page query and the total count for one specification.
        Returns at most spec.limit items, in spec.sort order.
        """
        rows, total = await self._run(spec)

        items = [CarSummary.model_validate(dict(row)) for row in rows]
        logger.info(f"🚗 Inventory search: {len(spec.predicates)} predicates -> {len(items)} of {total} cars")
        return SearchResult(items=items, total_count=total)

    async def page(self, spec: SearchSpecification, page: int) -> CarPage:
        """Catalog browsing: 1-based page of full cards, spec.limit per page."""
        page = max(1, page)
        rows, total = await self._run(spec, offset=(page - 1) * spec.limit, detail=True)
        return CarPage(
            items=[CarDetail.model_validate(dict(row)) for row in rows],
            total=total,
            page=page,
            per_page=spec.limit,
        )

    async def get(self, car_id: UUID) -> CarDetail:
        async with self.session_factory() as db:
            result = await db.execute(
                text(f"SELECT {DETAIL_COLUMNS} FROM cars c WHERE c.id = :car_id"),
                {"car_id": car_id},
            )
            row = result.mappings().first()

        if not row:
            raise CarNotFound(car_id)
        return CarDetail.model_validate(dict(row))

    async def brands(self) -> List[str]:
        async with self.session_factory() as db:
            result = await db.execute(text("SELECT DISTINCT brand FROM cars ORDER BY brand"))
            return list(result.scalars().all())

    async def _run(self, spec: SearchSpecification, offset: int = 0, detail: bool = False):
        page_query, count_query, params = compile_search_query(spec, offset=offset, detail=detail)

        async with self.session_factory() as db:
            result = await db.execute(page_query, params)
            rows = result.mappings().all()

            count_res = await db.execute(count_query, params)
            total = count_res.scalar() or 0

        return rows, int(total)

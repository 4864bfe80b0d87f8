"""
Inventory retriever: looks up catalog products matching the candidate drug name.

One query per lookup: ILIKE over name / generic name / brand name (plus
per-word conditions for multi-word terms), soft-deleted rows excluded, ordered
by match tier and then by stock status.
"""

import re
import structlog
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from pharmacy_rag.db.tables import categories, products, suppliers
from pharmacy_rag.rag.types import (
    DetectedIntent,
    InventoryMatch,
    StageError,
    StageResult,
)

logger = structlog.get_logger(__name__)

STAGE = "inventory"


def normalize_search_term(term: str) -> str:
    cleaned = re.sub(r"[^\w\s-]", "", term.lower().strip())
    return re.sub(r"\s+", " ", cleaned)


LIKE_ESCAPE = "/"


def contains_pattern(term: str) -> str:
    """ILIKE pattern matching ``term`` as a literal substring."""
    for char in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(char, LIKE_ESCAPE + char)
    return f"%{term}%"


def _name_matches(term: str) -> list:
    pattern = contains_pattern(term)
    return [
        products.c.name.ilike(pattern, escape=LIKE_ESCAPE),
        products.c.generic_name.ilike(pattern, escape=LIKE_ESCAPE),
        products.c.brand_name.ilike(pattern, escape=LIKE_ESCAPE),
    ]


class InventoryRetriever:
    def __init__(
        self,
        engine: AsyncEngine,
        max_results: int = 10,
        enable_fuzzy: bool = True,
        currency_symbol: str = "₱",
    ):
        self._engine = engine
        self._max_results = max_results
        self._enable_fuzzy = enable_fuzzy
        self._currency_symbol = currency_symbol

    async def retrieve(self, intent: DetectedIntent) -> StageResult[list[InventoryMatch]]:
        logger.info(
            "inventory_search_started",
            drug_name=intent.drug_name,
            intent=intent.type.value,
        )
        try:
            matches = await self.search(intent.drug_name)
        except (SQLAlchemyError, OSError) as e:
            logger.error("inventory_search_failed", drug_name=intent.drug_name, error=str(e))
            return StageResult(
                value=[],
                errors=[StageError(STAGE, f"Inventory lookup failed: {e}")],
            )

        logger.info("inventory_search_complete", drug_name=intent.drug_name, matches=len(matches))
        return StageResult(value=matches)

    async def search(self, query: str) -> list[InventoryMatch]:
        """Run the catalog query. Database errors propagate to the caller."""
        search_term = normalize_search_term(query)
        if not search_term:
            return []

        statement = self._build_query(search_term)
        async with self._engine.connect() as conn:
            result = await conn.execute(statement)
            rows = result.mappings().all()

        return [self._to_match(row) for row in rows]

    def _build_query(self, search_term: str):
        conditions = _name_matches(search_term)
        if self._enable_fuzzy:
            conditions.extend(self._fuzzy_conditions(search_term))

        match_tier = case(
            (func.lower(products.c.name) == search_term, 1),
            (func.lower(products.c.generic_name) == search_term, 2),
            (func.lower(products.c.brand_name) == search_term, 3),
            else_=4,
        )
        stock_tier = case((products.c.quantity > 0, 0), else_=1)

        return (
            select(
                products.c.id,
                products.c.name,
                products.c.generic_name,
                products.c.brand_name,
                products.c.quantity,
                products.c.selling_price,
                products.c.dosage_form,
                products.c.unit,
                categories.c.name.label("category_name"),
                suppliers.c.name.label("supplier_name"),
                products.c.expiry_date,
                products.c.min_stock_level,
            )
            .select_from(
                products.outerjoin(categories, products.c.category_id == categories.c.id)
                .outerjoin(suppliers, products.c.supplier_id == suppliers.c.id)
            )
            .where(and_(products.c.deleted_at.is_(None), or_(*conditions)))
            .order_by(match_tier, stock_tier)
            .limit(self._max_results)
        )

    @staticmethod
    def _fuzzy_conditions(search_term: str) -> list:
        words = [w for w in search_term.split() if len(w) > 2]
        if len(words) < 2:
            return []

        conditions = []
        for word in words:
            conditions.extend(_name_matches(word))
        return conditions

    def _to_match(self, row) -> InventoryMatch:
        price = row["selling_price"]
        return InventoryMatch(
            id=str(row["id"]),
            name=row["name"],
            generic_name=row["generic_name"] or None,
            brand=row["brand_name"] or None,
            category=row["category_name"] or "Unknown",
            in_stock=(row["quantity"] or 0) > 0,
            price=float(price) if price is not None else None,
            description=self._describe(row),
        )

    def _describe(self, row) -> str:
        parts = []
        if row["generic_name"] and row["generic_name"] != row["name"]:
            parts.append(f"Generic: {row['generic_name']}")
        if row["brand_name"]:
            parts.append(f"Brand: {row['brand_name']}")
        if row["dosage_form"]:
            parts.append(f"Form: {row['dosage_form']}")
        parts.append(f"Stock: {row['quantity']} {row['unit'] or 'units'}")
        if row["selling_price"] is not None:
            parts.append(f"Price: {self._currency_symbol}{row['selling_price']}")
        return " | ".join(parts)

    @staticmethod
    def match_score(match: InventoryMatch, query: str) -> float:
        q = query.lower()
        score = 0.0

        name = match.name.lower()
        if name == q:
            score += 1.0
        elif q in name:
            score += 0.8

        generic = (match.generic_name or "").lower()
        if generic and generic == q:
            score += 0.9
        elif generic and q in generic:
            score += 0.7

        brand = (match.brand or "").lower()
        if brand and brand == q:
            score += 0.8
        elif brand and q in brand:
            score += 0.6

        if match.in_stock:
            score += 0.1

        return min(score, 1.0)

    async def top_matches(self, query: str, limit: int = 5) -> list[InventoryMatch]:
        matches = await self.search(query)
        matches.sort(key=lambda m: self.match_score(m, query), reverse=True)
        return matches[:limit]

    async def is_in_stock(self, drug_name: str) -> bool:
        matches = await self.search(drug_name)
        return any(m.in_stock for m in matches)

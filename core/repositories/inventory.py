"""DuckDBStore inventory methods."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from core.models import Ingredient, InventoryMovement, RecipeLine
from core.observability import get_logger
from core.repositories.base import dedupe, to_utc_naive

logger = get_logger(__name__)


class InventoryMixin:

    async def upsert_ingredients(self, ingredients: List[Dict[str, Any]]) -> int:
        """Insert or update ingredient rows with their current stock.

        Returns:
            Number of ingredients upserted
        """
        if not ingredients:
            return 0

        ingredients = dedupe(ingredients, "id")
        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                for ingredient in ingredients:
                    conn.execute("""
                        INSERT OR REPLACE INTO inventory_ingredients (
                            id, company_id, name, unit, current_stock,
                            min_stock, average_unit_cost, synced_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                    """, [
                        ingredient["id"],
                        ingredient.get("company_id"),
                        ingredient.get("name"),
                        ingredient.get("unit"),
                        ingredient.get("current_stock") or 0,
                        ingredient.get("min_stock") or 0,
                        ingredient.get("average_unit_cost") or 0,
                    ])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(f"Upserted {len(ingredients)} ingredients to DuckDB")
        return len(ingredients)

    async def replace_recipes(self, company_id: str, lines: List[Dict[str, Any]]) -> int:
        """Replace a company's recipe rows; removed recipe lines must disappear too."""
        lines = dedupe(lines, "product_id", "ingredient_id")
        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                conn.execute(
                    "DELETE FROM inventory_product_ingredients WHERE company_id = ?",
                    [company_id],
                )
                for line in lines:
                    conn.execute("""
                        INSERT INTO inventory_product_ingredients (
                            product_id, ingredient_id, company_id, quantity_per_unit
                        ) VALUES (?, ?, ?, ?)
                    """, [
                        line["product_id"],
                        line["ingredient_id"],
                        company_id,
                        line.get("quantity_per_unit") or 0,
                    ])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return len(lines)

    async def upsert_movements(self, movements: List[Dict[str, Any]]) -> int:
        if not movements:
            return 0

        movements = dedupe(movements, "id")
        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                for movement in movements:
                    conn.execute("""
                        INSERT OR REPLACE INTO inventory_movements (
                            id, company_id, ingredient_id, movement_type,
                            quantity, unit_cost, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, [
                        movement["id"],
                        movement.get("company_id"),
                        movement.get("ingredient_id"),
                        movement.get("movement_type"),
                        movement.get("quantity") or 0,
                        movement.get("unit_cost"),
                        to_utc_naive(movement.get("created_at")),
                    ])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(f"Upserted {len(movements)} inventory movements to DuckDB")
        return len(movements)

    async def get_ingredients(self, company_id: str) -> List[Ingredient]:
        rows = await self._fetch_rows("""
            SELECT id, company_id, name, unit, current_stock, min_stock, average_unit_cost
            FROM inventory_ingredients
            WHERE company_id = ?
            ORDER BY name
        """, [company_id])
        return [Ingredient.from_row(r) for r in rows]

    async def get_recipe_lines(self, company_id: str) -> List[RecipeLine]:
        """Recipe rows joined with the ingredient's name and current stock."""
        rows = await self._fetch_rows("""
            SELECT
                r.product_id,
                r.ingredient_id,
                r.quantity_per_unit,
                i.name AS ingredient_name,
                COALESCE(i.current_stock, 0) AS current_stock
            FROM inventory_product_ingredients r
            LEFT JOIN inventory_ingredients i ON i.id = r.ingredient_id
            WHERE r.company_id = ?
        """, [company_id])
        return [RecipeLine.from_row(r) for r in rows]

    async def get_movements(
        self,
        company_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[InventoryMovement]:
        query = """
            SELECT id, ingredient_id, movement_type, quantity, unit_cost, created_at
            FROM inventory_movements
            WHERE company_id = ?
        """
        params: list = [company_id]
        if start is not None:
            query += " AND created_at >= ?"
            params.append(to_utc_naive(start))
        if end is not None:
            query += " AND created_at <= ?"
            params.append(to_utc_naive(end))
        query += " ORDER BY created_at"

        rows = await self._fetch_rows(query, params)
        return [InventoryMovement.from_row(r) for r in rows]

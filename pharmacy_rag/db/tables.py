"""
Read-only view of the pharmacy catalog tables used by the inventory lookup.

Only the columns the retriever selects or filters on are declared; the schema
itself is owned and migrated by the pharmacy management application.
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
)

suppliers = Table(
    "suppliers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("generic_name", String(100)),
    Column("brand_name", String(100)),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("supplier_id", Integer, ForeignKey("suppliers.id")),
    Column("dosage_form", String(50)),
    Column("unit", String(20)),
    Column("quantity", Integer, nullable=False),
    Column("selling_price", Numeric(10, 2), nullable=False),
    Column("min_stock_level", Integer, nullable=False, default=10),
    Column("expiry_date", Date),
    Column("deleted_at", DateTime),
)

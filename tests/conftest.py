"""Shared test configuration."""

import os
from datetime import datetime
import pytest
import pytest_asyncio
from pydantic import Field
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("AI_API_KEY", "sk-test-key-for-testing")
os.environ.setdefault("AI_MODEL", "gpt-4o-mini")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PHARMACY_NAME", "Pharmacy")

from pharmacy_rag.db.tables import categories, metadata, products, suppliers  # noqa: E402


class RecordingChatModel(BaseChatModel):
    """Chat model double that returns a fixed reply and keeps every prompt it saw."""

    reply: str = "Dosage:\n• 500 mg to 1000 mg every 4 to 6 hours"
    calls: list = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "recording"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        self.calls.append(messages)
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=self.reply))])


class FailingChatModel(BaseChatModel):
    @property
    def _llm_type(self) -> str:
        return "failing"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        raise RuntimeError("LLM endpoint unavailable")


@pytest.fixture
def chat_model():
    return RecordingChatModel()


@pytest.fixture
def failing_chat_model():
    return FailingChatModel()


@pytest_asyncio.fixture
async def inventory_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(categories.insert(), [
            {"id": 1, "name": "Analgesics", "description": "Pain relief"},
            {"id": 2, "name": "Antibiotics", "description": None},
            {"id": 3, "name": "Vitamins", "description": None},
        ])
        await conn.execute(suppliers.insert(), [{"id": 1, "name": "Unilab"}])
        await conn.execute(products.insert(), [
            {
                "id": 1,
                "name": "Biogesic Paracetamol 500mg Tablet",
                "generic_name": "Paracetamol",
                "brand_name": "Biogesic",
                "category_id": 1,
                "supplier_id": 1,
                "dosage_form": "Tablet",
                "unit": "tablets",
                "quantity": 120,
                "selling_price": 5.50,
                "min_stock_level": 20,
            },
            {
                "id": 2,
                "name": "Paracetamol",
                "generic_name": "Paracetamol",
                "brand_name": None,
                "category_id": 1,
                "supplier_id": None,
                "dosage_form": "Tablet",
                "unit": "tablets",
                "quantity": 0,
                "selling_price": 3.00,
                "min_stock_level": 10,
            },
            {
                "id": 3,
                "name": "Advil Ibuprofen 200mg Capsule",
                "generic_name": "Ibuprofen",
                "brand_name": "Advil",
                "category_id": 1,
                "supplier_id": 1,
                "dosage_form": "Capsule",
                "unit": "capsules",
                "quantity": 40,
                "selling_price": 12.00,
                "min_stock_level": 10,
            },
            {
                "id": 5,
                "name": "Ceelin Vitamin C Syrup",
                "generic_name": "Ascorbic Acid",
                "brand_name": "Ceelin",
                "category_id": 3,
                "supplier_id": None,
                "dosage_form": "Syrup",
                "unit": None,
                "quantity": 10,
                "selling_price": 95.00,
                "min_stock_level": 5,
            },
        ])
        # Multi-row inserts take their columns from the first row, so the
        # soft-deleted product goes in on its own.
        await conn.execute(products.insert().values(
            id=4,
            name="Amoxicillin 500mg Capsule",
            generic_name="Amoxicillin",
            brand_name=None,
            category_id=2,
            supplier_id=1,
            dosage_form="Capsule",
            unit="capsules",
            quantity=15,
            selling_price=8.00,
            min_stock_level=10,
            deleted_at=datetime(2024, 1, 15),
        ))
    yield engine
    await engine.dispose()

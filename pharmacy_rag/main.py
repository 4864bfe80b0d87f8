"""
FastAPI application for the pharmacy medication assistant.
Exposes endpoints for:
  - Free-text staff questions routed through the RAG pipeline
  - Topic shortcuts (dosage / usage / side effects) for a named drug
  - System health monitoring
"""

import logging
from contextlib import asynccontextmanager
from enum import Enum
import httpx
import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, field_validator
from pharmacy_rag.db.session import check_connection, create_engine_from_settings
from pharmacy_rag.rag.orchestrator import RAGOrchestrator, build_orchestrator
from pharmacy_rag.rag.types import UserQuery
from config import get_settings


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("starting_application", environment=settings.environment)

    engine = create_engine_from_settings(settings)
    if not await check_connection(engine):
        logger.warning("inventory_database_unreachable")

    http_client = httpx.AsyncClient(headers={"User-Agent": settings.http_user_agent})
    llm = ChatOpenAI(
        model=settings.ai_model,
        api_key=settings.ai_api_key,
        base_url=settings.ai_api_base,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout_seconds,
    )

    app.state.orchestrator = build_orchestrator(
        settings, engine=engine, http_client=http_client, llm=llm
    )
    logger.info("application_ready", model=settings.ai_model)
    yield

    await http_client.aclose()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title="Pharmacy Medication Assistant",
    description=(
        "Retrieval-augmented medication assistant for pharmacy staff, combining "
        "store inventory, RxNorm normalization and openFDA drug labels."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Request / Response Models ---

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    user_id: str | None = None

    @field_validator("message")
    @classmethod
    def check_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be blank")
        max_length = get_settings().max_query_length
        if len(value) > max_length:
            raise ValueError(f"message must be at most {max_length} characters")
        return value


class ChatResponse(BaseModel):
    response: str
    intent: str | None
    drug_name: str | None
    confidence: float
    sources: list[str]
    errors: list[str]


class DrugTopic(str, Enum):
    DOSAGE = "dosage"
    USAGE = "usage"
    SIDE_EFFECTS = "side-effects"


class DrugTopicResponse(BaseModel):
    drug_name: str
    topic: DrugTopic
    response: str


class HealthResponse(BaseModel):
    status: str
    components: dict[str, bool]


def _orchestrator(request: Request) -> RAGOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="RAG pipeline not initialized")
    return orchestrator


# --- Endpoints ---

@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    orchestrator = _orchestrator(request)
    components = await orchestrator.processing_stats()
    status = "healthy" if all(components.values()) else "degraded"
    return HealthResponse(status=status, components=components)


@app.post("/api/chatbot", response_model=ChatResponse)
async def chatbot(body: ChatRequest, request: Request):
    """Answer a free-text medication question."""
    orchestrator = _orchestrator(request)

    outcome = await orchestrator.run(UserQuery(text=body.message, user_id=body.user_id))
    context = outcome.context
    if context is None:
        return ChatResponse(
            response=outcome.response,
            intent=None,
            drug_name=None,
            confidence=0.0,
            sources=[],
            errors=[],
        )

    return ChatResponse(
        response=outcome.response,
        intent=context.intent.type.value,
        drug_name=context.intent.drug_name or None,
        confidence=orchestrator.compiler.confidence(context),
        sources=orchestrator.compiler.sources(context),
        errors=context.errors,
    )


@app.get("/api/drugs/{drug_name}/{topic}", response_model=DrugTopicResponse)
async def drug_topic(drug_name: str, topic: DrugTopic, request: Request):
    """Shortcut for a single-topic question about a named drug."""
    orchestrator = _orchestrator(request)

    if topic == DrugTopic.DOSAGE:
        response = await orchestrator.dosage_info(drug_name)
    elif topic == DrugTopic.USAGE:
        response = await orchestrator.usage_info(drug_name)
    else:
        response = await orchestrator.side_effects_info(drug_name)

    return DrugTopicResponse(drug_name=drug_name, topic=topic, response=response)


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("pharmacy_rag.main:app", host=settings.app_host, port=settings.app_port)

"""
RAG orchestrator: runs intent detection, the three retrieval stages and the
response compiler for one query.

Each query gets its own RetrievalContext. Stages are awaited in order
(inventory, normalization, clinical, compile) unless concurrent_lookup is on,
in which case inventory and normalization of the intent drug name run together.
No stage failure reaches the caller; failures land in context.errors and the
compiler answers with whatever data survived.
"""

import asyncio
import re
import time
from dataclasses import dataclass
import httpx
import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from config import Settings
from pharmacy_rag.llm_chain import ResponseCompiler
from pharmacy_rag.rag.clinical import ClinicalRetriever
from pharmacy_rag.rag.intent import IntentDetector
from pharmacy_rag.rag.inventory import InventoryRetriever
from pharmacy_rag.rag.normalization import NormalizationRetriever
from pharmacy_rag.rag.types import (
    DetectedIntent,
    IntentType,
    RetrievalContext,
    StageResult,
    UserQuery,
)

logger = structlog.get_logger(__name__)

NORMALIZATION_FAILED = "Drug name normalization failed"
NO_CLINICAL_DATA = "No clinical information available"

QUESTION_WORDS = re.compile(r"\b(what|how|when|where|why|for|about|tell|me)\b", re.IGNORECASE)

PIPELINE_ERROR_TEMPLATE = """\
I apologize, but I'm currently unable to process information about {drug}. This could be due to:

• Temporary service unavailability
• Network connectivity issues
• Invalid medication name

What you can do:
• Try rephrasing your question (e.g., "dosage for paracetamol")
• Check the spelling of the medication name
• Speak with our pharmacy staff for immediate assistance

For urgent medical questions, please consult a healthcare professional."""


@dataclass
class PipelineOutcome:
    response: str
    context: RetrievalContext | None = None


class RAGOrchestrator:
    def __init__(
        self,
        intent_detector: IntentDetector,
        inventory: InventoryRetriever,
        normalization: NormalizationRetriever,
        clinical: ClinicalRetriever,
        compiler: ResponseCompiler,
        concurrent_lookup: bool = False,
        low_confidence_threshold: float = 0.3,
    ):
        self._intent_detector = intent_detector
        self._inventory = inventory
        self._normalization = normalization
        self._clinical = clinical
        self._compiler = compiler
        self._concurrent_lookup = concurrent_lookup
        self._low_confidence_threshold = low_confidence_threshold

    @property
    def compiler(self) -> ResponseCompiler:
        return self._compiler

    async def process_query(self, query: UserQuery) -> str:
        outcome = await self.run(query)
        return outcome.response

    async def run(self, query: UserQuery) -> PipelineOutcome:
        started = time.perf_counter()
        try:
            intent = self.detect_intent(query)
            context = RetrievalContext(intent=intent)

            await self._retrieve(context)
            response = await self._compiler.compile(context)
        except Exception as e:
            logger.error("pipeline_failed", query=query.text[:100], error=str(e))
            return PipelineOutcome(response=self.pipeline_error_response(query))

        logger.info(
            "pipeline_complete",
            intent=context.intent.type.value,
            drug_name=context.intent.drug_name,
            inventory_matches=len(context.inventory_matches),
            normalization_results=len(context.normalization_results),
            clinical_records=len(context.clinical_data),
            errors=len(context.errors),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return PipelineOutcome(response=response, context=context)

    def detect_intent(self, query: UserQuery) -> DetectedIntent:
        try:
            intent = self._intent_detector.detect(query)
        except Exception as e:
            logger.error("intent_detection_failed", error=str(e))
            return DetectedIntent(
                type=IntentType.UNKNOWN,
                drug_name=query.text[:50],
                confidence=0.1,
                raw_query=query.text,
            )

        if intent.confidence < self._low_confidence_threshold:
            logger.warning("low_confidence_intent", confidence=intent.confidence)
        if not self._intent_detector.is_valid_drug_name(intent.drug_name):
            logger.warning("questionable_drug_name", drug_name=intent.drug_name)

        logger.info(
            "intent_detected",
            intent=intent.type.value,
            drug_name=intent.drug_name,
            confidence=intent.confidence,
        )
        return intent

    async def _retrieve(self, context: RetrievalContext) -> None:
        intent = context.intent

        if self._concurrent_lookup:
            inventory, normalization = await asyncio.gather(
                self._run_stage("inventory", self._inventory.retrieve(intent), context),
                self._run_stage("normalization", self._normalization.retrieve(intent), context),
            )
        else:
            inventory = await self._run_stage(
                "inventory", self._inventory.retrieve(intent), context
            )
            context.inventory_matches = inventory or []
            normalization = await self._run_stage(
                "normalization",
                self._normalization.retrieve(intent, context.inventory_matches),
                context,
            )

        context.inventory_matches = inventory or []
        context.normalization_results = normalization or []
        if not context.normalization_results:
            logger.warning("normalization_empty", drug_name=intent.drug_name)
            context.errors.append(NORMALIZATION_FAILED)

        clinical = await self._run_stage(
            "clinical",
            self._clinical.retrieve(
                intent, context.normalization_results, context.inventory_matches
            ),
            context,
        )
        context.clinical_data = clinical or []
        if not context.clinical_data:
            logger.warning("clinical_data_empty", drug_name=intent.drug_name)
            context.errors.append(NO_CLINICAL_DATA)

    async def _run_stage(self, stage: str, pending, context: RetrievalContext):
        """Await one retrieval stage, folding its errors into the context."""
        try:
            result: StageResult = await pending
        except Exception as e:
            logger.error("stage_failed", stage=stage, error=str(e))
            context.errors.append(f"{stage.capitalize()} retrieval failed: {e}")
            return None

        context.errors.extend(str(error) for error in result.errors)
        return result.value

    @staticmethod
    def pipeline_error_response(query: UserQuery) -> str:
        drug = next(
            (
                word
                for word in query.text.split()
                if len(word) > 3 and not QUESTION_WORDS.search(word)
            ),
            "the requested medication",
        )
        return PIPELINE_ERROR_TEMPLATE.format(drug=drug)

    async def dosage_info(self, drug_name: str, user_id: str | None = None) -> str:
        return await self.process_query(UserQuery(text=f"dosage for {drug_name}", user_id=user_id))

    async def usage_info(self, drug_name: str, user_id: str | None = None) -> str:
        return await self.process_query(UserQuery(text=f"usage for {drug_name}", user_id=user_id))

    async def side_effects_info(self, drug_name: str, user_id: str | None = None) -> str:
        return await self.process_query(
            UserQuery(text=f"side effects of {drug_name}", user_id=user_id)
        )

    async def processing_stats(self) -> dict[str, bool]:
        stats = {
            "intent_detector_ready": True,
            "inventory_connected": False,
            "rxnorm_available": False,
            "clinical_apis_available": False,
            "llm_available": False,
        }

        try:
            await self._inventory.top_matches("test", 1)
            stats["inventory_connected"] = True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("inventory_health_check_failed", error=str(e))

        try:
            stats["rxnorm_available"] = await self._normalization.can_normalize("ibuprofen")
        except Exception as e:
            logger.warning("rxnorm_health_check_failed", error=str(e))

        health_intent = DetectedIntent(
            type=IntentType.GENERAL, drug_name="ibuprofen", confidence=0.5, raw_query="ibuprofen"
        )
        try:
            clinical = await self._clinical.retrieve(health_intent)
            stats["clinical_apis_available"] = clinical.ok
        except Exception as e:
            logger.warning("clinical_health_check_failed", error=str(e))

        stats["llm_available"] = await self._compiler.health_check()
        return stats


def build_orchestrator(
    settings: Settings,
    *,
    engine: AsyncEngine,
    http_client: httpx.AsyncClient,
    llm: BaseChatModel,
) -> RAGOrchestrator:
    return RAGOrchestrator(
        intent_detector=IntentDetector(),
        inventory=InventoryRetriever(
            engine,
            max_results=settings.inventory_max_results,
            enable_fuzzy=settings.inventory_fuzzy_matching,
            currency_symbol=settings.currency_symbol,
        ),
        normalization=NormalizationRetriever(
            http_client,
            base_url=settings.rxnav_base_url,
            timeout=settings.rxnav_timeout_seconds,
            max_results=settings.rxnav_max_results,
            max_search_terms=settings.rxnav_max_search_terms,
            enable_spell_check=settings.rxnav_spell_check,
        ),
        clinical=ClinicalRetriever(
            http_client,
            label_url=settings.openfda_label_url,
            timeout=settings.openfda_timeout_seconds,
            result_limit=settings.openfda_result_limit,
            api_key=settings.openfda_api_key,
            user_agent=settings.http_user_agent,
        ),
        compiler=ResponseCompiler(llm, pharmacy_name=settings.pharmacy_name),
        concurrent_lookup=settings.rag_concurrent_lookup,
        low_confidence_threshold=settings.rag_low_confidence_threshold,
    )

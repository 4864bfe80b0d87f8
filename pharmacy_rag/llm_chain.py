"""
Response compiler: turns a populated retrieval context into the final answer.

One LCEL chain per intent (prompt | chat model). The model output is sanitized
and a deterministic source footer is appended. compile() is the single place
where a failure becomes the fixed apology text.
"""

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pharmacy_rag.rag.types import (
    ClinicalData,
    DosageInfo,
    IntentType,
    InventoryMatch,
    NormalizationResult,
    RetrievalContext,
    SideEffectsInfo,
    UsageInfo,
)
from pharmacy_rag.templates.prompts import (
    DOSAGE_HUMAN_PROMPT,
    DOSAGE_SYSTEM_PROMPT,
    GENERAL_HUMAN_PROMPT,
    GENERAL_SYSTEM_PROMPT,
    SIDE_EFFECTS_HUMAN_PROMPT,
    SIDE_EFFECTS_SYSTEM_PROMPT,
    USAGE_HUMAN_PROMPT,
    USAGE_SYSTEM_PROMPT,
)
from pharmacy_rag.validation.response_filter import ResponseSanitizer

logger = structlog.get_logger(__name__)

APOLOGY_RESPONSE = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try again."
)

RXNORM_SOURCE = "RxNorm (National Library of Medicine)"

NOTICE_LINES = [
    "Notice:",
    "- This information is compiled from authoritative clinical databases for pharmacy staff reference.",
    "- Verify current prescribing information and consult clinical guidelines for patient-specific decisions.",
]


def _build_chain(system_prompt: str, human_prompt: str, llm: BaseChatModel):
    prompt = ChatPromptTemplate.from_messages([
        ("system", system_prompt),
        ("human", human_prompt),
    ])
    return prompt | llm


class ResponseCompiler:
    def __init__(self, llm: BaseChatModel, pharmacy_name: str = "Pharmacy"):
        self._llm = llm
        self._pharmacy_name = pharmacy_name
        self._sanitizer = ResponseSanitizer()
        self._chains = {
            IntentType.DOSAGE: _build_chain(DOSAGE_SYSTEM_PROMPT, DOSAGE_HUMAN_PROMPT, llm),
            IntentType.USAGE: _build_chain(USAGE_SYSTEM_PROMPT, USAGE_HUMAN_PROMPT, llm),
            IntentType.SIDE_EFFECTS: _build_chain(
                SIDE_EFFECTS_SYSTEM_PROMPT, SIDE_EFFECTS_HUMAN_PROMPT, llm
            ),
            IntentType.GENERAL: _build_chain(GENERAL_SYSTEM_PROMPT, GENERAL_HUMAN_PROMPT, llm),
        }

    async def compile(self, context: RetrievalContext) -> str:
        try:
            chain = self.select_chain(context.intent.type)
            chain_input = self.prepare_chain_input(context)

            logger.info(
                "compile_started",
                intent=context.intent.type.value,
                drug_name=context.intent.drug_name,
                clinical_records=len(context.clinical_data),
            )
            result = await chain.ainvoke(chain_input)

            body = self._sanitizer.sanitize(str(result.content or ""))
            response = f"{body}\n\n{self.build_footer(context)}".strip()

            logger.info("compile_complete", response_length=len(response))
            return response
        except Exception as e:
            logger.error("compile_failed", intent=context.intent.type.value, error=str(e))
            return APOLOGY_RESPONSE

    def select_chain(self, intent_type: IntentType):
        return self._chains.get(intent_type, self._chains[IntentType.GENERAL])

    def prepare_chain_input(self, context: RetrievalContext) -> dict[str, str]:
        chain_input = {
            "drug_name": context.intent.drug_name,
            "intent": context.intent.type.value,
            "inventory_data": format_inventory(context.inventory_matches),
            "clinical_data": format_clinical(context.clinical_data),
            "rxnorm_data": format_normalization(context.normalization_results),
        }

        intent_type = context.intent.type
        if intent_type == IntentType.DOSAGE:
            chain_input["dosage_data"] = format_dosage(
                [c.sections.dosage for c in context.clinical_data if c.sections.dosage]
            )
        elif intent_type == IntentType.USAGE:
            chain_input["usage_data"] = format_usage(
                [c.sections.usage for c in context.clinical_data if c.sections.usage]
            )
        elif intent_type == IntentType.SIDE_EFFECTS:
            chain_input["side_effects_data"] = format_side_effects(
                [c.sections.side_effects for c in context.clinical_data if c.sections.side_effects]
            )

        return chain_input

    def sources(self, context: RetrievalContext) -> list[str]:
        """Data sources that contributed to the context, in footer order."""
        sources = []
        if context.inventory_matches:
            sources.append(f"{self._pharmacy_name} Inventory")
        if context.normalization_results:
            sources.append(RXNORM_SOURCE)
        for record in context.clinical_data:
            if record.source and record.source not in sources:
                sources.append(record.source)
        return sources

    def build_footer(self, context: RetrievalContext) -> str:
        lines = []
        sources = self.sources(context)
        if sources:
            lines.append("Clinical Data Sources:")
            lines.extend(f"• {source}" for source in sources)
            lines.append("")
        lines.extend(NOTICE_LINES)
        return "\n".join(lines)

    @staticmethod
    def confidence(context: RetrievalContext) -> float:
        confidence = 0.0
        if context.inventory_matches:
            confidence += 0.3
        if context.clinical_data:
            confidence += 0.4
        if context.normalization_results:
            confidence += 0.2

        wanted = {
            IntentType.DOSAGE: "dosage",
            IntentType.USAGE: "usage",
            IntentType.SIDE_EFFECTS: "side_effects",
        }.get(context.intent.type)
        if wanted and any(wanted in c.sections.populated() for c in context.clinical_data):
            confidence += 0.1

        return min(confidence, 1.0)

    async def health_check(self) -> bool:
        try:
            result = await self._llm.ainvoke('Respond with "OK" if you can receive this message.')
        except Exception as e:
            logger.error("llm_health_check_failed", error=str(e))
            return False
        return isinstance(result.content, str) and "OK" in result.content


def format_inventory(matches: list[InventoryMatch]) -> str:
    if not matches:
        return "No inventory data available."
    return "\n".join(
        f"{m.name} - {m.description or ''} (In Stock: {'Yes' if m.in_stock else 'No'})"
        for m in matches
    )


def format_normalization(results: list[NormalizationResult]) -> str:
    if not results:
        return "No standardized drug information available."
    return "\n".join(
        f"{r.canonical_name} (RxCUI: {r.canonical_code}) - Type: {r.term_type}"
        for r in results
    )


def format_dosage(blocks: list[DosageInfo]) -> str:
    formatted = []
    for dosage in blocks:
        parts = []
        if dosage.adults:
            parts.append(f"Adults: {dosage.adults}")
        if dosage.children:
            parts.append(f"Children: {dosage.children}")
        if dosage.frequency:
            parts.append(f"Frequency: {dosage.frequency}")
        if dosage.instructions:
            parts.append(f"Instructions: {dosage.instructions}")
        if dosage.warnings:
            parts.append(f"Warnings: {dosage.warnings}")
        if parts:
            formatted.append("\n".join(parts))
    return "\n\n".join(formatted) or "No specific dosage information available."


def format_usage(blocks: list[UsageInfo]) -> str:
    formatted = []
    for usage in blocks:
        parts = []
        if usage.indications:
            parts.append("Indications:")
            parts.extend(f"• {item}" for item in usage.indications)
        if usage.contraindications:
            parts.append("Contraindications:")
            parts.extend(f"• {item}" for item in usage.contraindications)
        if parts:
            formatted.append("\n".join(parts))
    return "\n\n".join(formatted) or "No specific usage information available."


def format_side_effects(blocks: list[SideEffectsInfo]) -> str:
    formatted = []
    for effects in blocks:
        parts = []
        if effects.common:
            parts.append("Common Side Effects:")
            parts.extend(f"• {item}" for item in effects.common)
        if effects.serious:
            parts.append("Serious Side Effects:")
            parts.extend(f"• {item}" for item in effects.serious)
        if parts:
            formatted.append("\n".join(parts))
    return "\n\n".join(formatted) or "No specific side effects information available."


def format_clinical(records: list[ClinicalData]) -> str:
    """Label-by-label summary used by the general prompt, section content included."""
    if not records:
        return "No clinical data available."

    formatted = []
    for record in records:
        sections = record.sections
        parts = [f"Label: {record.drug_name}"]
        if sections.dosage:
            parts.append(format_dosage([sections.dosage]))
        if sections.usage:
            parts.append(format_usage([sections.usage]))
        if sections.side_effects:
            parts.append(format_side_effects([sections.side_effects]))
        formatted.append("\n".join(parts))
    return "\n\n".join(formatted)

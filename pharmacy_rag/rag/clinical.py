"""
Clinical retriever: fetches drug label text from openFDA and mines the sections
relevant to the detected intent.
"""

import re
import structlog
import httpx
from pharmacy_rag.rag import extraction
from pharmacy_rag.rag.payload import nested_field, text_list
from pharmacy_rag.rag.types import (
    ClinicalData,
    ClinicalSections,
    DetectedIntent,
    DosageInfo,
    IntentType,
    InventoryMatch,
    NormalizationResult,
    StageError,
    StageResult,
)

logger = structlog.get_logger(__name__)

STAGE = "clinical"
SOURCE_NAME = "FDA Drug Labels"
MAX_SEARCH_TERMS = 3

DOSAGE_INTENTS = {IntentType.DOSAGE, IntentType.GENERAL, IntentType.UNKNOWN}
USAGE_INTENTS = {IntentType.USAGE, IntentType.GENERAL, IntentType.UNKNOWN}
SIDE_EFFECT_INTENTS = {IntentType.SIDE_EFFECTS, IntentType.GENERAL, IntentType.UNKNOWN}


class ClinicalRetriever:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        label_url: str = "https://api.fda.gov/drug/label.json",
        timeout: float = 15.0,
        result_limit: int = 5,
        api_key: str = "",
        user_agent: str = "pharmacy-rag-assistant/1.0",
    ):
        self._client = http_client
        self._label_url = label_url
        self._timeout = timeout
        self._result_limit = result_limit
        self._api_key = api_key
        self._user_agent = user_agent

    async def retrieve(
        self,
        intent: DetectedIntent,
        normalization_results: list[NormalizationResult] | None = None,
        inventory_matches: list[InventoryMatch] | None = None,
    ) -> StageResult[list[ClinicalData]]:
        normalization_results = normalization_results or []
        inventory_matches = inventory_matches or []

        terms = self.build_search_terms(intent, normalization_results, inventory_matches)
        canonical_code = (
            normalization_results[0].canonical_code if normalization_results else "unknown"
        )
        product = inventory_matches[0] if inventory_matches else None

        logger.info("clinical_search_started", intent=intent.type.value, terms=terms)

        records: list[ClinicalData] = []
        errors: list[StageError] = []
        for term in terms:
            record = await self.fetch_label(term, canonical_code, intent, product, errors)
            if record:
                records.append(record)

        logger.info(
            "clinical_search_complete",
            records=len(records),
            sections=[r.sections.populated() for r in records],
            failed_calls=len(errors),
        )
        return StageResult(value=records, errors=errors)

    @staticmethod
    def build_search_terms(
        intent: DetectedIntent,
        normalization_results: list[NormalizationResult],
        inventory_matches: list[InventoryMatch],
    ) -> list[str]:
        candidates: list[str] = []
        for result in normalization_results:
            candidates.append(result.canonical_name)
            candidates.extend(result.synonyms)

        if not normalization_results:
            candidates.append(intent.drug_name)

        for match in inventory_matches[:2]:
            if match.generic_name:
                candidates.append(match.generic_name)
            if match.name != match.generic_name:
                candidates.append(match.name)

        seen: set[str] = set()
        terms: list[str] = []
        for candidate in candidates:
            term = (candidate or "").strip()
            key = term.lower()
            if len(term) <= 2 or "pharma" in key or key in seen:
                continue
            seen.add(key)
            terms.append(term)

        return terms[:MAX_SEARCH_TERMS]

    def build_query(self, term: str, product: InventoryMatch | None) -> tuple[str, str | None]:
        """Return the openFDA search expression and the dosage form it was narrowed to."""
        name = _normalize_term(term)
        query = f'(openfda.generic_name:"{name}" OR openfda.brand_name:"{name}")'
        if product is None:
            return query, None

        form = extraction.infer_dosage_form(product.name)
        if form:
            query += f' AND dosage_form:"{form}"'

        strength = extraction.extract_strength(product.name)
        if strength:
            query += f' AND active_ingredient:"{strength}"'

        return query, form

    async def fetch_label(
        self,
        term: str,
        canonical_code: str,
        intent: DetectedIntent,
        product: InventoryMatch | None,
        errors: list[StageError],
    ) -> ClinicalData | None:
        query, form = self.build_query(term, product)
        params = {"search": query, "limit": self._result_limit}
        if self._api_key:
            params["api_key"] = self._api_key

        logger.debug("openfda_request", term=term, query=query)
        try:
            response = await self._client.get(
                self._label_url,
                params=params,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout,
            )
            if response.status_code == 404:
                logger.info("openfda_no_label", term=term)
                return None
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("openfda_call_failed", term=term, error=str(e))
            errors.append(StageError(STAGE, f"openFDA label lookup failed for '{term}': {e}"))
            return None

        try:
            results = nested_field(data, "results", kind=list)
            labels = [label for label in results if isinstance(label, dict)]
            if results and not labels:
                raise ValueError("no label objects in results")
        except ValueError as e:
            logger.warning("openfda_malformed_response", term=term, error=str(e))
            errors.append(
                StageError(STAGE, f"openFDA label lookup returned malformed data for '{term}': {e}")
            )
            return None

        if not labels:
            return None

        label = self.select_label(labels, form)
        return ClinicalData(
            canonical_code=canonical_code,
            drug_name=term,
            sections=self.extract_sections(label, intent.type, term),
            source=SOURCE_NAME,
        )

    @staticmethod
    def select_label(labels: list[dict], form: str | None) -> dict:
        if form:
            for label in labels:
                label_forms = text_list(label, "dosage_form")
                if label_forms and form in label_forms[0].lower():
                    logger.debug("openfda_form_match", form=label_forms[0])
                    return label
        return labels[0]

    @staticmethod
    def extract_sections(label: dict, intent_type: IntentType, drug_name: str) -> ClinicalSections:
        sections = ClinicalSections()

        if intent_type in DOSAGE_INTENTS:
            sections.dosage = _label_dosage(label, drug_name)

        if intent_type in USAGE_INTENTS:
            sections.usage = extraction.extract_usage(
                text_list(label, "indications_and_usage"),
                text_list(label, "contraindications"),
            )

        if intent_type in SIDE_EFFECT_INTENTS:
            texts = text_list(label, "adverse_reactions") + text_list(label, "warnings")
            sections.side_effects = extraction.extract_side_effects(" ".join(texts))

        return sections


def _label_dosage(label: dict, drug_name: str) -> DosageInfo | None:
    texts = text_list(label, "dosage_and_administration")
    if not texts:
        return None
    if extraction.is_prescription_drug(drug_name):
        return extraction.prescription_notice()
    return extraction.extract_dosage(" ".join(texts))


def _normalize_term(term: str) -> str:
    cleaned = re.sub(r'[^\w\s-]', "", term.lower().strip())
    return re.sub(r"\s+", " ", cleaned)

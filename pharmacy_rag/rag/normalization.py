"""
Drug-name normalization against the NLM RxNav REST API.

Each candidate term is resolved with a three-tier strategy that stops at the
first tier producing a hit:
  1. exact name lookup (/rxcui)
  2. approximate term lookup (/approximateTerm), top 3 candidates
  3. spelling suggestions (/spellingsuggestions), top 2 retried as exact lookups
Every hit is enriched with /rxcui/{code}/properties for the canonical name,
synonym and term type. Each call is attempted once with its own timeout; a
failed call only costs that lookup.
"""

import re
import structlog
import httpx
from pharmacy_rag.rag.payload import nested_field, text_value
from pharmacy_rag.rag.types import (
    DetectedIntent,
    InventoryMatch,
    NormalizationResult,
    StageError,
    StageResult,
)

logger = structlog.get_logger(__name__)

STAGE = "normalization"

INGREDIENT_TERM_TYPES = {"IN", "PIN"}
CLINICAL_DRUG_TERM_TYPES = {"SCD", "GPCK"}


class NormalizationRetriever:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = "https://rxnav.nlm.nih.gov/REST",
        timeout: float = 10.0,
        max_results: int = 5,
        max_search_terms: int = 5,
        enable_spell_check: bool = True,
    ):
        self._client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_results = max_results
        self._max_search_terms = max_search_terms
        self._enable_spell_check = enable_spell_check

    async def retrieve(
        self,
        intent: DetectedIntent,
        inventory_matches: list[InventoryMatch] | None = None,
    ) -> StageResult[list[NormalizationResult]]:
        terms = self.build_search_terms(intent, inventory_matches or [])
        logger.info("normalization_started", terms=terms, intent=intent.type.value)

        collected: list[NormalizationResult] = []
        errors: list[StageError] = []
        for term in terms:
            result = await self.normalize(term)
            collected.extend(result.value)
            errors.extend(result.errors)

        ranked = sorted(
            self.deduplicate(collected),
            key=lambda r: r.confidence_score,
            reverse=True,
        )[: self._max_results]

        logger.info(
            "normalization_complete",
            results=len(ranked),
            codes=[r.canonical_code for r in ranked],
            failed_calls=len(errors),
        )
        return StageResult(value=ranked, errors=errors)

    def build_search_terms(
        self, intent: DetectedIntent, inventory_matches: list[InventoryMatch]
    ) -> list[str]:
        candidates = [intent.drug_name]
        for match in inventory_matches:
            candidates.extend([match.name, match.generic_name, match.brand])

        seen: set[str] = set()
        terms: list[str] = []
        for candidate in candidates:
            if not candidate:
                continue
            term = self.normalize_drug_name(candidate)
            if len(term) <= 2 or term in seen:
                continue
            seen.add(term)
            terms.append(term)

        return terms[: self._max_search_terms]

    async def normalize(self, drug_name: str) -> StageResult[list[NormalizationResult]]:
        name = self.normalize_drug_name(drug_name)
        errors: list[StageError] = []

        exact = await self._exact_match(name, errors)
        if exact:
            return StageResult(value=[exact], errors=errors)

        approximate = await self._approximate_match(name, errors)
        if approximate:
            return StageResult(value=approximate, errors=errors)

        if self._enable_spell_check:
            suggested = await self._spelling_match(name, errors)
            if suggested:
                return StageResult(value=suggested, errors=errors)

        logger.debug("normalization_no_match", term=name)
        return StageResult(value=[], errors=errors)

    async def _exact_match(
        self, name: str, errors: list[StageError]
    ) -> NormalizationResult | None:
        data = await self._get_json("/rxcui.json", {"name": name}, "exact", name, errors)
        if not data:
            return None

        try:
            codes = nested_field(data, "idGroup", "rxnormId", kind=list)
        except ValueError as e:
            self._record_malformed("exact", name, e, errors)
            return None

        codes = [str(code) for code in codes if isinstance(code, (str, int)) and code]
        if not codes:
            return None

        return await self._build_result(codes[0], name, None, errors)

    async def _approximate_match(
        self, name: str, errors: list[StageError]
    ) -> list[NormalizationResult]:
        data = await self._get_json(
            "/approximateTerm.json",
            {"term": name, "maxEntries": 10},
            "approximate",
            name,
            errors,
        )
        if not data:
            return []

        try:
            candidates = nested_field(data, "approximateGroup", "candidate", kind=list)
        except ValueError as e:
            self._record_malformed("approximate", name, e, errors)
            return []

        top: list[tuple[str, float | None]] = []
        seen: set[str] = set()
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            code = candidate.get("rxcui")
            if not isinstance(code, (str, int)) or not code or str(code) in seen:
                continue
            seen.add(str(code))
            top.append((str(code), _parse_score(candidate.get("score"))))
            if len(top) == 3:
                break

        results = []
        for code, score in top:
            results.append(await self._build_result(code, name, score, errors))
        return results

    async def _spelling_match(
        self, name: str, errors: list[StageError]
    ) -> list[NormalizationResult]:
        data = await self._get_json(
            "/spellingsuggestions.json", {"name": name}, "spelling", name, errors
        )
        if not data:
            return []

        try:
            suggestions = nested_field(
                data, "suggestionGroup", "suggestionList", "suggestion", kind=list
            )
        except ValueError as e:
            self._record_malformed("spelling", name, e, errors)
            return []

        suggestions = [s for s in suggestions if isinstance(s, str) and s.strip()]

        results = []
        for suggestion in suggestions[:2]:
            exact = await self._exact_match(suggestion, errors)
            if exact:
                results.append(exact)
        return results

    async def _build_result(
        self,
        code: str,
        fallback_name: str,
        api_score: float | None,
        errors: list[StageError],
    ) -> NormalizationResult:
        data = await self._get_json(
            f"/rxcui/{code}/properties.json", None, "properties", code, errors
        )
        properties: dict = {}
        if data:
            try:
                properties = nested_field(data, "properties")
            except ValueError as e:
                self._record_malformed("properties", code, e, errors)

        synonym = text_value(properties, "synonym")
        result = NormalizationResult(
            canonical_code=code,
            canonical_name=text_value(properties, "name") or fallback_name,
            synonyms=[synonym] if synonym else [],
            term_type=text_value(properties, "tty") or "UNKNOWN",
            api_score=api_score,
        )
        result.confidence_score = self.confidence(result)
        return result

    @staticmethod
    def _record_malformed(lookup: str, term: str, error: ValueError, errors: list[StageError]):
        logger.warning("rxnav_malformed_response", lookup=lookup, term=term, error=str(error))
        errors.append(
            StageError(STAGE, f"RxNorm {lookup} lookup returned malformed data for '{term}': {error}")
        )

    async def _get_json(
        self,
        path: str,
        params: dict | None,
        lookup: str,
        term: str,
        errors: list[StageError],
    ) -> dict | None:
        try:
            response = await self._client.get(
                f"{self._base_url}{path}",
                params=params,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("rxnav_call_failed", lookup=lookup, term=term, error=str(e))
            errors.append(StageError(STAGE, f"RxNorm {lookup} lookup failed for '{term}': {e}"))
            return None

        if not isinstance(data, dict):
            errors.append(StageError(STAGE, f"RxNorm {lookup} lookup returned malformed data for '{term}'"))
            return None
        return data

    @staticmethod
    def confidence(result: NormalizationResult) -> float:
        confidence = 0.8
        if result.api_score is not None:
            confidence = min(0.95, result.api_score / 100)

        if result.term_type in INGREDIENT_TERM_TYPES:
            confidence += 0.1
        elif result.term_type in CLINICAL_DRUG_TERM_TYPES:
            confidence += 0.05

        return min(max(confidence, 0.0), 1.0)

    @staticmethod
    def deduplicate(results: list[NormalizationResult]) -> list[NormalizationResult]:
        seen: set[str] = set()
        unique = []
        for result in results:
            if result.canonical_code in seen:
                continue
            seen.add(result.canonical_code)
            unique.append(result)
        return unique

    @staticmethod
    def normalize_drug_name(name: str) -> str:
        cleaned = re.sub(r"[^\w\s-]", "", name.lower().strip())
        return re.sub(r"\s+", " ", cleaned)

    async def best_code(self, drug_name: str) -> str | None:
        result = await self.normalize(drug_name)
        if not result.value:
            return None
        best = max(result.value, key=lambda r: r.confidence_score)
        return best.canonical_code

    async def can_normalize(self, drug_name: str) -> bool:
        return await self.best_code(drug_name) is not None


def _parse_score(raw) -> float | None:
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None

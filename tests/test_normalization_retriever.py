"""Tests for RxNav drug-name normalization: tiered lookup, ranking and degradation."""

import httpx
import pytest
import pytest_asyncio
from pharmacy_rag.rag.normalization import NormalizationRetriever
from pharmacy_rag.rag.types import (
    DetectedIntent,
    IntentType,
    InventoryMatch,
    NormalizationResult,
)

BASE_URL = "https://rxnav.test/REST"

EXACT_CODES = {
    "ibuprofen": "5640",
    "acetaminophen": "161",
    "advil": "153010",
}

PROPERTIES = {
    "5640": {"name": "ibuprofen", "synonym": "", "tty": "IN"},
    "161": {"name": "acetaminophen", "synonym": "APAP", "tty": "IN"},
    "153010": {"name": "Advil", "synonym": "", "tty": "BN"},
    "1234": {"name": "acetaminophen 500 MG Oral Tablet", "synonym": "", "tty": "SCD"},
}

APPROXIMATE = {
    "paracetamol": [
        {"rxcui": "161", "score": "75", "rank": "1"},
        {"rxcui": "161", "score": "70", "rank": "2"},
        {"rxcui": "1234", "score": "60", "rank": "3"},
    ],
}

SPELLING = {
    "ibuprofin": ["ibuprofen", "ibuprofen lysine"],
}


def rxnav_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path.removeprefix("/REST")
    params = request.url.params

    if path == "/rxcui.json":
        code = EXACT_CODES.get(params["name"])
        id_group = {"name": params["name"]}
        if code:
            id_group["rxnormId"] = [code]
        return httpx.Response(200, json={"idGroup": id_group})

    if path == "/approximateTerm.json":
        candidates = APPROXIMATE.get(params["term"], [])
        return httpx.Response(200, json={"approximateGroup": {"candidate": candidates}})

    if path == "/spellingsuggestions.json":
        suggestions = SPELLING.get(params["name"])
        group = {"name": params["name"]}
        if suggestions:
            group["suggestionList"] = {"suggestion": suggestions}
        return httpx.Response(200, json={"suggestionGroup": group})

    if path.startswith("/rxcui/") and path.endswith("/properties.json"):
        code = path.split("/")[2]
        properties = dict(PROPERTIES[code], rxcui=code)
        return httpx.Response(200, json={"properties": properties})

    return httpx.Response(404)


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient(transport=httpx.MockTransport(rxnav_handler)) as client:
        yield client


@pytest.fixture
def retriever(http_client):
    return NormalizationRetriever(http_client, base_url=BASE_URL)


def make_intent(drug_name):
    return DetectedIntent(type=IntentType.DOSAGE, drug_name=drug_name, confidence=0.9, raw_query=drug_name)


class TestTieredLookup:
    @pytest.mark.asyncio
    async def test_exact_match(self, retriever):
        result = await retriever.normalize("Ibuprofen")
        assert result.ok
        assert len(result.value) == 1
        match = result.value[0]
        assert match.canonical_code == "5640"
        assert match.canonical_name == "ibuprofen"
        assert match.term_type == "IN"
        assert match.synonyms == []
        assert match.confidence_score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_approximate_match_takes_unique_candidates(self, retriever):
        result = await retriever.normalize("paracetamol")
        codes = [r.canonical_code for r in result.value]
        assert codes == ["161", "1234"]
        acetaminophen = result.value[0]
        assert acetaminophen.canonical_name == "acetaminophen"
        assert acetaminophen.synonyms == ["APAP"]
        assert acetaminophen.api_score == 75.0
        assert acetaminophen.confidence_score == pytest.approx(0.85)

    @pytest.mark.asyncio
    async def test_spelling_suggestion_retried_as_exact(self, retriever):
        result = await retriever.normalize("ibuprofin")
        assert [r.canonical_code for r in result.value] == ["5640"]

    @pytest.mark.asyncio
    async def test_spell_check_can_be_disabled(self, http_client):
        retriever = NormalizationRetriever(http_client, base_url=BASE_URL, enable_spell_check=False)
        result = await retriever.normalize("ibuprofin")
        assert result.value == []

    @pytest.mark.asyncio
    async def test_no_match_anywhere(self, retriever):
        result = await retriever.normalize("notadrugatall")
        assert result.value == []
        assert result.ok


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_results_are_deduplicated_and_ranked(self, retriever):
        matches = [
            InventoryMatch(
                id="3",
                name="Advil",
                category="Analgesics",
                in_stock=True,
                generic_name="Ibuprofen",
                brand="Advil",
            )
        ]
        result = await retriever.retrieve(make_intent("ibuprofen"), matches)

        codes = [r.canonical_code for r in result.value]
        assert len(codes) == len(set(codes))
        assert codes == ["5640", "153010"]

    @pytest.mark.asyncio
    async def test_result_cap(self, http_client):
        retriever = NormalizationRetriever(http_client, base_url=BASE_URL, max_results=1)
        result = await retriever.retrieve(make_intent("paracetamol"))
        assert len(result.value) == 1
        assert result.value[0].canonical_code == "161"

    def test_search_terms_deduplicated_and_filtered(self, retriever):
        matches = [
            InventoryMatch(id="1", name="Paracetamol", category="x", in_stock=True, generic_name="paracetamol"),
            InventoryMatch(id="2", name="Biogesic", category="x", in_stock=True, brand="BG"),
        ]
        terms = retriever.build_search_terms(make_intent("Paracetamol"), matches)
        assert terms == ["paracetamol", "biogesic"]

    def test_search_terms_capped(self, http_client):
        retriever = NormalizationRetriever(http_client, base_url=BASE_URL, max_search_terms=2)
        matches = [
            InventoryMatch(id=str(i), name=f"product{i}", category="x", in_stock=True)
            for i in range(5)
        ]
        assert len(retriever.build_search_terms(make_intent("ibuprofen"), matches)) == 2


class TestDegradation:
    @pytest.mark.asyncio
    async def test_network_error_degrades_to_empty(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            retriever = NormalizationRetriever(client, base_url=BASE_URL)
            result = await retriever.retrieve(make_intent("ibuprofen"))

        assert result.value == []
        assert not result.ok
        assert all(e.stage == "normalization" for e in result.errors)
        assert "RxNorm exact lookup failed for 'ibuprofen'" in str(result.errors[0])

    @pytest.mark.asyncio
    async def test_server_error_recorded(self):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        ) as client:
            retriever = NormalizationRetriever(client, base_url=BASE_URL)
            result = await retriever.normalize("ibuprofen")

        assert result.value == []
        assert len(result.errors) == 3

    @pytest.mark.asyncio
    async def test_properties_failure_keeps_code(self):
        def handler(request):
            if "properties" in request.url.path:
                return httpx.Response(503)
            return httpx.Response(200, json={"idGroup": {"rxnormId": ["5640"]}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            retriever = NormalizationRetriever(client, base_url=BASE_URL)
            result = await retriever.normalize("ibuprofen")

        assert result.value[0].canonical_code == "5640"
        assert result.value[0].canonical_name == "ibuprofen"
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_best_code_and_can_normalize(self, retriever):
        assert await retriever.best_code("paracetamol") == "161"
        assert await retriever.can_normalize("notadrugatall") is False


class TestMalformedPayloads:
    @pytest.mark.asyncio
    async def test_malformed_term_keeps_results_from_other_terms(self):
        def handler(request):
            if request.url.path.endswith("/rxcui.json") and request.url.params["name"] == "advil":
                return httpx.Response(200, json={"idGroup": ["not", "a", "dict"]})
            return rxnav_handler(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            retriever = NormalizationRetriever(client, base_url=BASE_URL)
            result = await retriever.retrieve(
                make_intent("ibuprofen"),
                [InventoryMatch(id="3", name="Advil", category="Analgesics", in_stock=True)],
            )

        assert [r.canonical_code for r in result.value] == ["5640"]
        assert len(result.errors) == 1
        assert "RxNorm exact lookup returned malformed data for 'advil'" in str(result.errors[0])

    @pytest.mark.asyncio
    async def test_string_groups_recorded_as_malformed(self):
        body = {
            "idGroup": "maintenance",
            "approximateGroup": "maintenance",
            "suggestionGroup": "maintenance",
        }
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        ) as client:
            retriever = NormalizationRetriever(client, base_url=BASE_URL)
            result = await retriever.normalize("ibuprofen")
            available = await retriever.can_normalize("ibuprofen")

        assert result.value == []
        assert len(result.errors) == 3
        assert all("returned malformed data" in str(e) for e in result.errors)
        assert available is False

    @pytest.mark.asyncio
    async def test_junk_candidates_and_properties_are_skipped(self):
        def handler(request):
            path = request.url.path
            if path.endswith("/approximateTerm.json"):
                candidates = ["junk", None, {"rxcui": "161", "score": "75"}]
                return httpx.Response(200, json={"approximateGroup": {"candidate": candidates}})
            if path.endswith("/properties.json"):
                return httpx.Response(200, json={"properties": {"name": 42, "tty": ["IN"]}})
            return httpx.Response(200, json={"idGroup": {"name": "paracetamol"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            retriever = NormalizationRetriever(client, base_url=BASE_URL)
            result = await retriever.normalize("paracetamol")

        assert result.ok
        assert len(result.value) == 1
        match = result.value[0]
        assert match.canonical_code == "161"
        assert match.canonical_name == "paracetamol"
        assert match.term_type == "UNKNOWN"
        assert match.confidence_score == pytest.approx(0.75)


class TestConfidence:
    def test_ingredient_bonus_without_score(self):
        result = NormalizationResult(canonical_code="1", canonical_name="x", term_type="IN")
        assert NormalizationRetriever.confidence(result) == pytest.approx(0.9)

    def test_clinical_drug_bonus(self):
        result = NormalizationResult(canonical_code="1", canonical_name="x", term_type="SCD", api_score=60)
        assert NormalizationRetriever.confidence(result) == pytest.approx(0.65)

    def test_api_score_capped(self):
        result = NormalizationResult(canonical_code="1", canonical_name="x", term_type="BN", api_score=100)
        assert NormalizationRetriever.confidence(result) == pytest.approx(0.95)

    def test_never_exceeds_one(self):
        result = NormalizationResult(canonical_code="1", canonical_name="x", term_type="IN", api_score=100)
        assert NormalizationRetriever.confidence(result) == 1.0

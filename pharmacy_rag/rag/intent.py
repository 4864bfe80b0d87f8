"""
Pattern-based intent detection for staff medication questions.

Queries are matched against dosage, usage and side-effect pattern groups in
that order; the first pattern with a capture decides the intent and supplies
the candidate drug name. No external calls are made.
"""

import re
import structlog
from pharmacy_rag.rag.types import DetectedIntent, IntentType, UserQuery

logger = structlog.get_logger(__name__)

_NAME = r"([a-z0-9\s-]+)"

DOSAGE_PATTERNS = [
    re.compile(rf"\b(?:dosage|dose|how much|amount|quantity|mg|ml|tablets?|pills?)\s+(?:of\s+|for\s+)?{_NAME}"),
    re.compile(rf"\b{_NAME}\s+(?:dosage|dose|how much|amount)"),
    re.compile(rf"\bhow\s+much\s+{_NAME}\s+(?:should|can|to)"),
    re.compile(rf"\bwhat\s+(?:is\s+the\s+)?(?:dosage|dose)\s+(?:of\s+|for\s+)?{_NAME}"),
    re.compile(rf"\b{_NAME}\s+(?:maximum|max|minimum|min)\s+(?:dose|dosage)"),
]

USAGE_PATTERNS = [
    re.compile(rf"\bwhat\s+(?:is\s+)?{_NAME}\s+(?:used\s+for|for)\b"),
    re.compile(
        rf"\b(?:usage|use|uses|indications?|what\s+is(?!\s+the\s+(?:side|adverse|risks?)\b))"
        rf"\s+(?:of\s+|for\s+)?{_NAME}"
    ),
    re.compile(rf"\bhow\s+(?:to\s+use|do\s+i\s+use)\s+{_NAME}"),
    re.compile(rf"\b{_NAME}\s+(?:indication|purpose|treatment)"),
    re.compile(rf"\bwhen\s+(?:to\s+take|should\s+i\s+take)\s+{_NAME}"),
]

SIDE_EFFECTS_PATTERNS = [
    re.compile(rf"\b(?:side\s+effects?|adverse\s+effects?|reactions?)\s+(?:of\s+|for\s+)?{_NAME}"),
    re.compile(rf"\b{_NAME}\s+(?:side\s+effects?|adverse\s+effects?)"),
    re.compile(rf"\bwhat\s+are\s+the\s+(?:side\s+effects?|risks?)\s+of\s+{_NAME}"),
    re.compile(rf"\bdoes\s+{_NAME}\s+(?:have|cause)\s+(?:side\s+effects?|reactions?)"),
    re.compile(rf"\b{_NAME}\s+(?:warnings?|precautions?|contraindications?)"),
]

GENERAL_PATTERNS = [
    re.compile(rf"\btell\s+me\s+about\s+{_NAME}"),
    re.compile(rf"\binformation\s+(?:on|about)\s+{_NAME}"),
    re.compile(rf"\b(?:about|regarding|concerning)\s+{_NAME}"),
    re.compile(rf"\b{_NAME}\s+(?:information|details|facts)"),
]

KEYWORD_BOOSTS = [
    re.compile(r"\b(?:dosage|dose|how much)\b"),
    re.compile(r"\b(?:usage|used for|indication)\b"),
    re.compile(r"\b(?:side effects?|adverse effects?)\b"),
]

FORM_WORDS = re.compile(r"\b(?:tablet|pill|capsule|mg|ml|dose|dosage)s?\b")

FILLER_WORDS = {
    "what", "how", "when", "where", "why", "which", "is", "are", "the", "a", "an",
    "and", "or", "but", "for", "of", "to", "in", "on", "at", "by", "with", "about",
    "tell", "me", "information", "details", "should", "can", "could", "i", "do",
    "does", "take", "taking", "much", "used", "use", "please", "give", "my", "it",
    "medicine", "medication", "medications", "drug", "drugs", "pill", "pills",
    "tablet", "tablets", "side", "effects", "effect", "dosage", "dose", "usage",
}

INTENT_PRIORITY = {
    IntentType.DOSAGE: 3,
    IntentType.SIDE_EFFECTS: 2,
    IntentType.USAGE: 2,
    IntentType.GENERAL: 1,
    IntentType.UNKNOWN: 0,
}

_TYPED_GROUPS = (
    (IntentType.DOSAGE, DOSAGE_PATTERNS),
    (IntentType.USAGE, USAGE_PATTERNS),
    (IntentType.SIDE_EFFECTS, SIDE_EFFECTS_PATTERNS),
)


class IntentDetector:
    def detect(self, query: UserQuery) -> DetectedIntent:
        raw = query.text or ""
        try:
            return self._detect(raw)
        except Exception as e:
            logger.warning("intent_detection_degraded", error=str(e))
            return DetectedIntent(
                type=IntentType.UNKNOWN,
                drug_name="",
                confidence=0.1,
                raw_query=raw,
            )

    def _detect(self, raw: str) -> DetectedIntent:
        normalized = raw.lower().strip()

        for intent_type, patterns in _TYPED_GROUPS:
            capture = self._match(normalized, patterns)
            if capture is None:
                continue
            drug_name = self.clean_drug_name(capture)
            if not drug_name:
                drug_name = self.extract_potential_drug_name(normalized)
            return DetectedIntent(
                type=intent_type,
                drug_name=drug_name,
                confidence=self._pattern_confidence(normalized, capture),
                raw_query=raw,
            )

        capture = self._match(normalized, GENERAL_PATTERNS)
        if capture is not None and self.clean_drug_name(capture):
            return DetectedIntent(
                type=IntentType.GENERAL,
                drug_name=self.clean_drug_name(capture),
                confidence=0.5,
                raw_query=raw,
            )

        return DetectedIntent(
            type=IntentType.UNKNOWN,
            drug_name=self.extract_potential_drug_name(normalized),
            confidence=0.2,
            raw_query=raw,
        )

    @staticmethod
    def _match(query: str, patterns: list[re.Pattern]) -> str | None:
        for pattern in patterns:
            match = pattern.search(query)
            if match and match.group(1).strip():
                return match.group(1).strip()
        return None

    @staticmethod
    def _pattern_confidence(query: str, capture: str) -> float:
        confidence = 0.7
        for keywords in KEYWORD_BOOSTS:
            if keywords.search(query):
                confidence += 0.2

        if len(query) < 10:
            confidence -= 0.2
        if len(capture) < 3:
            confidence -= 0.3

        return min(max(confidence, 0.1), 1.0)

    @staticmethod
    def clean_drug_name(drug_name: str) -> str:
        if not drug_name:
            return ""
        cleaned = FORM_WORDS.sub(" ", drug_name.lower())
        cleaned = re.sub(r"[^\w\s-]", " ", cleaned)
        words = [w for w in cleaned.split() if w not in FILLER_WORDS]
        return " ".join(words)

    @staticmethod
    def extract_potential_drug_name(query: str) -> str:
        """Longest run of tokens left once question and filler words are removed."""
        tokens = re.sub(r"[^\w\s-]", " ", query.lower()).split()

        runs: list[list[str]] = [[]]
        for token in tokens:
            if token in FILLER_WORDS or (len(token) <= 2 and not token.isdigit()):
                if runs[-1]:
                    runs.append([])
                continue
            runs[-1].append(token)

        best = max(runs, key=lambda run: len(" ".join(run)))
        return " ".join(best)

    @staticmethod
    def is_valid_drug_name(drug_name: str) -> bool:
        if not drug_name or len(drug_name) < 3:
            return False
        return bool(re.match(r"^[a-zA-Z][a-zA-Z0-9\s-]*$", drug_name))

    @staticmethod
    def intent_priority(intent_type: IntentType) -> int:
        return INTENT_PRIORITY.get(intent_type, 0)

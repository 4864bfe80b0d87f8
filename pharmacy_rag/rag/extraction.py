"""
Best-effort text mining over free-text drug label fields.

These are regex heuristics, not a label parser: they pull the first phrase
following a cue word ("adults:", "common side effects include ...") and make no
completeness or precision guarantees. The clinical retriever only talks to the
extract_* functions, so a better extractor can replace this module wholesale.
"""

import re
from pharmacy_rag.rag.types import DosageInfo, SideEffectsInfo, UsageInfo

# Heuristic lists only; neither is backed by a regulatory source.
KNOWN_OTC = [
    "ibuprofen",
    "acetaminophen",
    "paracetamol",
    "aspirin",
    "naproxen",
    "diphenhydramine",
    "loratadine",
    "cetirizine",
    "pseudoephedrine",
    "dextromethorphan",
    "guaifenesin",
    "calcium carbonate",
    "famotidine",
    "omeprazole",
    "simethicone",
    "loperamide",
    "bismuth subsalicylate",
]

PRESCRIPTION_INDICATORS = [
    "antibiotic",
    "steroid",
    "insulin",
    "warfarin",
    "metformin",
    "lisinopril",
    "atorvastatin",
    "amoxicillin",
    "azithromycin",
]

def prescription_notice() -> DosageInfo:
    return DosageInfo(
        adults=(
            "This is a prescription medication. Consult your healthcare provider "
            "for proper dosing."
        ),
        instructions=(
            "Prescription medications require professional medical supervision for "
            "safe and effective use."
        ),
        warnings="Never take prescription medications without proper medical guidance.",
    )

ADULT_RE = re.compile(r"(?:adults?|adult dose)[\s:]+([^.!?\n]+)", re.IGNORECASE)
CHILD_RE = re.compile(r"(?:children|child|pediatric)[\s:]+([^.!?\n]+)", re.IGNORECASE)
FREQUENCY_RE = re.compile(r"(?:frequency|times?|daily|hourly)[\s:]+([^.!?\n]+)", re.IGNORECASE)
INSTRUCTIONS_RE = re.compile(r"(?:instructions?|how to take)[\s:]+([^.!?\n]+)", re.IGNORECASE)
WARNING_RE = re.compile(r"(?:warnings?|caution)[\s:]+([^.!?\n]+)", re.IGNORECASE)

COMMON_EFFECTS_RE = re.compile(
    r"(?:common|frequent)[\s\w]*?(?:side effects?|reactions?)[\s:]+([^.!?\n]+)",
    re.IGNORECASE,
)
SERIOUS_EFFECTS_RE = re.compile(
    r"(?:serious|severe)[\s\w]*?(?:side effects?|reactions?)[\s:]+([^.!?\n]+)",
    re.IGNORECASE,
)

STRENGTH_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(mg|mcg|g|ml)\b", re.IGNORECASE)

DOSAGE_FORM_CUES = [
    (("tablet",), "tablet"),
    (("capsule",), "capsule"),
    (("syrup", "liquid", "suspension"), "solution"),
    (("cream", "gel", "ointment"), "cream"),
]


def _first_phrase(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    phrase = match.group(1).strip()
    return phrase or None


def _split_list(phrase: str) -> list[str]:
    items = (item.strip() for item in re.split(r"[,;]|\band\b", phrase))
    return [item for item in items if item]


def _flatten(texts: list[str]) -> list[str]:
    cleaned = (re.sub(r"[\n\r]+", " ", text).strip() for text in texts)
    return [text for text in cleaned if len(text) > 10]


def extract_dosage(text: str) -> DosageInfo | None:
    if not text or not text.strip():
        return None

    lowered = text.lower()
    info = DosageInfo(
        adults=_first_phrase(ADULT_RE, lowered),
        children=_first_phrase(CHILD_RE, lowered),
        frequency=_first_phrase(FREQUENCY_RE, lowered),
        instructions=_first_phrase(INSTRUCTIONS_RE, lowered),
        warnings=_first_phrase(WARNING_RE, lowered),
    )
    if info.is_empty():
        first_sentence = re.split(r"(?<=[.!?])\s+", text.strip(), maxsplit=1)[0]
        info.instructions = re.sub(r"\s+", " ", first_sentence)[:300]
    return info


def extract_usage(
    indication_texts: list[str], contraindication_texts: list[str] | None = None
) -> UsageInfo | None:
    indications = _flatten(indication_texts or [])
    if not indications:
        return None
    return UsageInfo(
        indications=indications,
        contraindications=_flatten(contraindication_texts or []),
    )


def extract_side_effects(text: str) -> SideEffectsInfo | None:
    if not text or not text.strip():
        return None

    lowered = text.lower()
    common = _first_phrase(COMMON_EFFECTS_RE, lowered)
    serious = _first_phrase(SERIOUS_EFFECTS_RE, lowered)
    return SideEffectsInfo(
        common=_split_list(common) if common else [],
        serious=_split_list(serious) if serious else [],
    )


def infer_dosage_form(product_name: str) -> str | None:
    name = (product_name or "").lower()
    for cues, form in DOSAGE_FORM_CUES:
        if any(cue in name for cue in cues):
            return form
    return None


def extract_strength(product_name: str) -> str | None:
    """Strength token such as "500 mg" from a product name, if present."""
    match = STRENGTH_RE.search(product_name or "")
    if not match:
        return None
    return f"{match.group(1)} {match.group(2).lower()}"


def is_known_otc(drug_name: str) -> bool:
    name = (drug_name or "").lower().strip()
    if not name:
        return False
    return any(otc in name or name in otc for otc in KNOWN_OTC)


def is_prescription_drug(drug_name: str) -> bool:
    name = (drug_name or "").lower()
    if is_known_otc(name):
        return False
    return any(indicator in name for indicator in PRESCRIPTION_INDICATORS)

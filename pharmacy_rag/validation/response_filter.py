"""
Post-processing of model output before the source footer is attached.

The prompts forbid these sections, but the model still emits them now and then.
The footer is appended after sanitization, so its "Clinical Data Sources:"
block is never touched here.
"""

import re
import structlog

logger = structlog.get_logger(__name__)

CLINICAL_INFO_BLOCK = re.compile(r"(^|\n)Clinical Information:[\s\S]*?(?=\n\n|$)", re.IGNORECASE)
SOURCES_LINE = re.compile(r"(^|\n)Sources?:.*$", re.IGNORECASE | re.MULTILINE)
META_LINE = re.compile(
    r"(^|\n)(Notes?|Debug|Confidence|Processing|Inventory|Metadata):.*$",
    re.IGNORECASE | re.MULTILINE,
)
EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


class ResponseSanitizer:
    def sanitize(self, raw: str) -> str:
        text = (raw or "").rstrip()

        text, clinical_blocks = CLINICAL_INFO_BLOCK.subn("", text)
        text, source_lines = SOURCES_LINE.subn("", text)
        text, meta_lines = META_LINE.subn("", text)
        text = EXTRA_BLANK_LINES.sub("\n\n", text).strip()

        if clinical_blocks or source_lines or meta_lines:
            logger.warning(
                "response_sections_stripped",
                clinical_blocks=clinical_blocks,
                source_lines=source_lines,
                meta_lines=meta_lines,
            )
        return text

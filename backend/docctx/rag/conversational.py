"""Conversational retrieval for commercial real-estate offering memoranda.

Query building:
- Rewrites common phrasings ("year 1", "yr1", "NOI") into every variant the
  documents use, to widen lexical recall.
- Appends recent user turns so follow-up questions keep their subject.
- For each domain-term category already present in the query, appends up to
  two unused synonyms from that category.

Result shaping:
- One chunk per page (the longest), ordered by ascending page number, so the
  prompt reads in document order.
"""

import logging
import re

from backend.docctx.docs.retriever import RetrievalEngine
from backend.docctx.errors import ContextCorruptedError
from backend.docctx.models.retrieval import ChatMessage, RetrievedChunk

logger = logging.getLogger(__name__)

# =========================================================
# QUERY EXPANSION TABLES
# =========================================================

QUERY_SUBSTITUTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(?:year|yr|y)[- ]?1\b", re.IGNORECASE), "year 1 y1 yr 1"),
    (re.compile(r"\bnoi\b", re.IGNORECASE), "noi net operating income"),
]

CRE_TERMS: dict[str, list[str]] = {
    "financial": [
        "rent", "revenue", "income", "noi", "cap rate", "cash flow", "expenses", "operating", "ebitda",
    ],
    "debt": ["loan", "mortgage", "financing", "debt", "leverage", "ltv", "dscr", "interest", "maturity"],
    "market": [
        "market", "submarket", "comparable", "comps", "location", "demographic", "trends", "growth",
    ],
    "physical": [
        "unit", "square feet", "sf", "mix", "bedroom", "bath", "layout", "amenities", "condition",
    ],
    "assumptions": ["assumption", "projection", "forecast", "growth", "vacancy", "turnover", "exit"],
}

MAX_SYNONYMS_PER_CATEGORY = 2

HEURISTIC_SECTIONS = [
    "financial summary",
    "rent roll",
    "operating expenses",
    "debt assumptions",
    "market analysis",
    "unit mix",
    "property details",
    "investment summary",
]

HEURISTIC_K = 2
HEURISTIC_MAX_CHARS = 1200
RECENT_TURNS = 3


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text) is not None


def build_enhanced_query(last_user_message: str, recent_context: str) -> str:
    """Expand a user question into a wider lexical query.

    Args:
        last_user_message: Most recent user message
        recent_context: Text of recent user turns (may be empty)

    Returns:
        Enhanced query string
    """
    expanded = last_user_message.lower()
    for pattern, replacement in QUERY_SUBSTITUTIONS:
        expanded = pattern.sub(replacement, expanded)

    enhanced = expanded
    if recent_context and recent_context != last_user_message:
        enhanced = f"{enhanced} {recent_context}"

    haystack = enhanced.lower()
    synonyms: list[str] = []

    for terms in CRE_TERMS.values():
        if not any(_contains_term(haystack, term) for term in terms):
            continue
        unused = [term for term in terms if not _contains_term(haystack, term) and term not in synonyms]
        synonyms.extend(unused[:MAX_SYNONYMS_PER_CATEGORY])

    if synonyms:
        enhanced = f"{enhanced} {' '.join(synonyms)}"

    logger.debug(
        "Enhanced query built",
        extra={"structured": {"original": last_user_message, "enhanced": enhanced, "synonyms": synonyms}},
    )

    return enhanced


def last_user_message(messages: list[ChatMessage]) -> ChatMessage | None:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def collect_recent_context(messages: list[ChatMessage], current: str) -> str:
    """User text from the last few turns, without repeats of the current message."""
    recent = messages[-RECENT_TURNS:]
    return " ".join(m.content for m in recent if m.role == "user" and m.content != current)


def dedupe_by_page(chunks: list[RetrievedChunk]) -> list[RetrievedChunk]:
    """Keep the longest chunk per page; the first one seen wins ties.

    Returns:
        Deduplicated chunks sorted by ascending page number
    """
    by_page: dict[int, RetrievedChunk] = {}

    for chunk in chunks:
        text = chunk.content.strip()
        if not text:
            continue

        page = chunk.page_number if chunk.page_number >= 0 else 0
        previous = by_page.get(page)
        if previous is None or len(text) > len(previous.content):
            by_page[page] = chunk.model_copy(update={"content": text, "page_number": page})

    return [by_page[page] for page in sorted(by_page)]


class ConversationalRetriever:
    """Retrieve document context for a chat conversation."""

    def __init__(
        self,
        engine: RetrievalEngine,
        *,
        k: int = 4,
        max_results: int | None = None,
        max_chars_per_chunk: int = 1000,
    ) -> None:
        """Initialize retriever.

        Args:
            engine: Retrieval engine
            k: Chunks requested from primary retrieval
            max_results: Cap on returned chunks (defaults to k)
            max_chars_per_chunk: Truncation applied by primary retrieval
        """
        self._engine = engine
        self._k = k
        self._max_results = max_results or k
        self._max_chars_per_chunk = max_chars_per_chunk

    async def fallback_heuristic_retrieval(
        self, document_id: str, user_id: str | None = None
    ) -> list[RetrievedChunk]:
        """Probe canonical section headings when the user's query found nothing.

        A failing probe is logged and skipped.

        Raises:
            ContextCorruptedError: The document's stored context is incomplete
        """
        logger.info(f"Attempting heuristic fallback retrieval for {document_id}")
        found: list[RetrievedChunk] = []

        for section in HEURISTIC_SECTIONS:
            try:
                chunks = await self._engine.retrieve_top_k(
                    document_id,
                    section,
                    HEURISTIC_K,
                    max_chars_per_chunk=HEURISTIC_MAX_CHARS,
                    user_id=user_id,
                )
            except ContextCorruptedError:
                raise
            except Exception as e:
                logger.warning(
                    f"Heuristic probe failed for section: {section}",
                    extra={"structured": {"document_id": document_id, "error_reason": type(e).__name__}},
                )
                continue

            found.extend(chunks)

        return found

    async def get_relevant_chunks(
        self,
        document_id: str,
        messages: list[ChatMessage],
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Relevant chunks for the latest user question, in page order.

        Returns:
            Up to max_results chunks, one per page; [] when nothing is found

        Raises:
            ContextCorruptedError: The document's stored context is incomplete
        """
        if not document_id or not messages:
            return []

        latest = last_user_message(messages)
        if latest is None:
            return []

        recent_context = collect_recent_context(messages, latest.content)

        try:
            query = build_enhanced_query(latest.content, recent_context)

            chunks = await self._engine.retrieve_top_k(
                document_id,
                query,
                self._k,
                max_chars_per_chunk=self._max_chars_per_chunk,
                user_id=user_id,
            )
            logger.info(f"Primary retrieval found {len(chunks)} chunks for {document_id}")

            if not chunks:
                chunks = await self.fallback_heuristic_retrieval(document_id, user_id=user_id)

        except ContextCorruptedError:
            raise
        except Exception as e:
            logger.error(
                f"Conversational retrieval failed for {document_id}",
                extra={"structured": {"document_id": document_id, "error_reason": type(e).__name__}},
            )
            return []

        if not chunks:
            logger.warning(f"No chunks found even with fallback for {document_id}")
            return []

        selected = dedupe_by_page(chunks)[: self._max_results]

        logger.info(
            "Final chunk selection",
            extra={
                "structured": {
                    "document_id": document_id,
                    "total_found": len(chunks),
                    "final_count": len(selected),
                    "pages": [chunk.page_number for chunk in selected],
                }
            },
        )

        return selected

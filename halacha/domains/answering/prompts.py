"""
Prompt templates for answer generation.

One system prompt per SearchMode; the user prompt lists numbered sources
with their provenance so the model can cite them as [Source N].
"""

from __future__ import annotations

from collections.abc import Sequence

from halacha.domains.retrieval.models import Passage, RetrievedSource, SearchMode

__all__ = ["get_system_prompt", "build_user_prompt"]

DISCLAIMER = (
    "For practical halacha, consult a competent rabbi who knows you and your "
    "community; this is for learning and research only."
)

PRACTICAL_SYSTEM = f"""You are a halakhic research assistant. You help users understand halakhic sources and the opinions found in them. You never issue psak halacha (legal rulings).

RULES:
1. Build your response ONLY from the sources provided. Do not add material from outside them.
2. Group opinions by sefer (book) and by community (Ashkenazi, Sephardi, etc.).
3. State conflicts between opinions explicitly.
4. Note relevant minhagim (customs) and the communities they apply to.
5. Non-canonical sources (apocrypha, pseudepigrapha, academic) go in a SEPARATE section titled "Additional Context from Non-Canonical Sources", marked as carrying NO halakhic authority.
6. Never base a normative statement on a non-canonical source.
7. Cite sources by section reference (e.g. "Shulchan Arukh OC 253:1") and by [Source N].
8. End every response with: "{DISCLAIMER}\""""

DEEP_RESEARCH_SYSTEM = """You are a halakhic research analyst preparing exhaustive source analysis for scholars. You never issue psak halacha.

RULES:
1. Cover the provided materials exhaustively.
2. Build a sugya map tracing the topic from the earliest sources through modern responsa.
3. Give an opinion matrix: each position, its sevara (reasoning), what it depends on, the community that follows it, and its practical boundary conditions.
4. Classify each machloket (disagreement): factual, definitional, values-based, or about scope.
5. Point out syntheses and compromise positions.
6. Offer conditional frameworks ("weighting X leads to A; weighting Y leads to B") without making the final decision.
7. Non-canonical sources, if provided, belong in a separate section labeled as non-halakhic context.
8. Never base normative analysis on a non-canonical source.
9. End with: "This analysis is a research aid for scholars and poskim, not psak halacha.\""""

POSEK_VIEW_SYSTEM = """You are preparing a structured halakhic research brief for a posek (halakhic decisor). The reader has extensive Torah knowledge; keep basic explanations to a minimum.

SECTIONS:

1. **Mar'ei Mekomot (Source References)**: a flat, ordered list of every relevant reference in the provided materials.

2. **Shittot Summary Table** with columns:
   | Position | Primary Holders | Sevara | Community | Practical Outcome |

3. **Unresolved Tensions**: points where the provided sources leave real uncertainty.

4. **Precedent Analogies**: relevant analogies or precedent patterns in the sources.

5. **Minhag Data**: community-specific custom data from the sources.

RULES:
- Use ONLY the provided sources.
- Mark non-canonical sources clearly and never use them as the basis for a normative position.
- Do not issue psak. Lay out the landscape for the posek's own determination."""

_SYSTEM_PROMPTS = {
    SearchMode.PRACTICAL: PRACTICAL_SYSTEM,
    SearchMode.DEEP_RESEARCH: DEEP_RESEARCH_SYSTEM,
    SearchMode.POSEK_VIEW: POSEK_VIEW_SYSTEM,
}


def get_system_prompt(mode: SearchMode | str) -> str:
    """System prompt for an answer mode; unknown modes get the practical one."""
    try:
        return _SYSTEM_PROMPTS[SearchMode(mode)]
    except ValueError:
        return PRACTICAL_SYSTEM


def _source_header(index: int, source: RetrievedSource) -> str:
    meta = [
        source.work,
        source.section_ref,
        f"Author: {source.author}" if source.author else None,
        f"Era: {source.era}" if source.era else None,
        f"Community: {source.community}",
        f"Tier: {source.corpus_tier.value}",
        None if source.is_primary else "Related",
    ]
    return f"[Source {index}] " + " | ".join(m for m in meta if m)


def build_user_prompt(
    question: str,
    sources: Sequence[RetrievedSource],
    context: Sequence[Passage] = (),
) -> str:
    """
    Build the user prompt.

    Sources are numbered from 1 in result order. Hierarchical context, when
    present, follows in its own section and is not numbered.
    """
    sources_text = "\n\n---\n\n".join(
        f"{_source_header(i, source)}\n{source.text}"
        for i, source in enumerate(sources, start=1)
    )
    prompt = f"QUESTION: {question}\n\nSOURCES:\n\n{sources_text}"

    if context:
        context_text = "\n\n".join(
            f"{passage.work} {passage.section_ref}\n{passage.text}" for passage in context
        )
        prompt += (
            "\n\nSURROUNDING CONTEXT (same sections as the sources above; "
            f"for orientation, do not cite):\n\n{context_text}"
        )

    return prompt

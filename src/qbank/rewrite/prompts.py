"""Prompt templates for question rewriting.

The system prompt is fixed for a run; the user prompt embeds one
question's current text, explanation, answer type and option count.
Prompt version tracks breaking changes for reproducibility.
"""

from __future__ import annotations

from qbank.models import CanonicalRecord

PROMPT_VERSION = "1.0.0"

SYSTEM_PROMPT = """You are a professional editor of Standard Belgian Dutch (Algemeen Belgisch Nederlands) working on Belgian driving licence theory material.
Task: rephrase the text you are given while keeping the word count identical or nearly identical.
1. Length: the output must be almost the same length as the input, at most 2 or 3 words longer or shorter.
2. Minimal variation: keep the structure and flow of the original but never return an exact copy. Swap non-technical verbs or adjectives and make small grammatical changes instead of rewriting whole sentences.
3. Terminology: keep the official terms of the Belgian traffic code exactly as written (for example bebouwde kom, MTM, sleep). Never alter a traffic definition.
4. No citations: do not mention the 'Wegcode' or 'Verkeersreglement' unless the original does.
5. Localization: write Standard Belgian Dutch and avoid Netherlandic forms (no hartstikke or nou; use autosnelweg)."""

_USER_TEMPLATE = """Rephrase the following driving theory content. Return ONLY valid JSON, no markdown.

Original Question: {question}

Original Explanation: {explanation}

Answer Type: {answer_type}
Number of Choices: {choice_count}

Response format (return ONLY this JSON, nothing else):
{{"question": "rephrased question in Dutch", "explanation": "rephrased explanation in Dutch"}}"""


def build_user_prompt(record: CanonicalRecord) -> str:
    """Build the per-question user prompt."""
    return _USER_TEMPLATE.format(
        question=record.question_text,
        explanation=record.explanation,
        answer_type=record.answer_type,
        choice_count=len(record.choices),
    )

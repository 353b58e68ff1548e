"""Prompt augmentation blocks built from retrieval results."""

from __future__ import annotations

from collections.abc import Sequence

from coderecall.retrieval.models import RetrievalResult

DEFAULT_PREVIEW_CHARS = 200


def _percent(similarity: float) -> str:
    return f"{similarity * 100:.1f}%"


def _format_example(index: int, result: RetrievalResult) -> str:
    ex = result.example
    language = f"{ex.language} ({ex.framework})" if ex.framework else ex.language
    return (
        f"\nExample {index} (similarity: {_percent(result.similarity)}):\n"
        f"Task: {ex.task}\n"
        f"Language: {language}\n"
        f"Solution:\n"
        f"```{ex.language}\n{ex.code}\n```\n"
    )


def _format_warning(index: int, result: RetrievalResult, preview_chars: int) -> str:
    ex = result.example
    preview = ex.code[:preview_chars]
    if len(ex.code) > preview_chars:
        preview += "..."
    return (
        f"\nWarning {index} (similarity: {_percent(result.similarity)}):\n"
        f"Task: {ex.task}\n"
        f"Error Type: {ex.error_type or 'unknown'}\n"
        f"Error Message: {ex.error_message or 'No message'}\n"
        f"Failed Attempt:\n"
        f"```{ex.language}\n{preview}\n```\n"
    )


def augment_prompt(original: str, results: Sequence[RetrievalResult]) -> str:
    """Append a ``<similar_examples>`` block; unchanged when there are no results."""
    if not results:
        return original

    examples = "\n".join(_format_example(i, r) for i, r in enumerate(results, start=1))
    return (
        f"{original}\n\n"
        "<similar_examples>\n"
        "Here are similar successful examples for reference. "
        "Use them as inspiration but adapt to the current task:\n\n"
        f"{examples}\n"
        "</similar_examples>\n\n"
        "Important: Adapt these examples to the current requirements. Don't copy verbatim."
    )


def augment_with_error_warnings(
    original: str,
    results: Sequence[RetrievalResult],
    *,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
) -> str:
    """Append an ``<error_warnings>`` block listing similar past failures."""
    if not results:
        return original

    warnings = "\n".join(
        _format_warning(i, r, preview_chars) for i, r in enumerate(results, start=1)
    )
    return (
        f"{original}\n\n"
        "<error_warnings>\n"
        "IMPORTANT: Similar tasks have failed in the past. Learn from these mistakes:\n\n"
        f"{warnings}\n"
        "Key lessons:\n"
        "- Avoid the patterns shown in these failed attempts\n"
        "- Pay attention to the error types and messages\n"
        "- Use a different approach to solve this task\n"
        "</error_warnings>"
    )

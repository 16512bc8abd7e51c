"""Conversion of evaluation samples into Bedrock evaluation input records."""

import json
from collections.abc import Iterable

from src.features.evaluation.constants import KNOWLEDGE_BASE_IDENTIFIER
from src.features.evaluation.models import (
    EvaluationSample,
    SourceAttribution,
    TextSegment,
)


def _reference(attribution: SourceAttribution) -> dict[str, object]:
    return {
        "content": {"text": attribution.snippet},
        "metadata": {"title": attribution.title, "url": attribution.url},
    }


def _citation(
    segment: TextSegment, attribution: SourceAttribution
) -> dict[str, object]:
    return {
        "generatedResponsePart": {
            "textResponsePart": {
                "span": {
                    "start": segment.begin_offset,
                    "end": segment.end_offset,
                },
                "text": segment.snippet_text,
            }
        },
        "retrievedReferences": [_reference(attribution)],
    }


def build_evaluation_record(sample: EvaluationSample) -> dict[str, object]:
    """Build the model-evaluation record for one sample.

    Each attribution becomes one retrieved passage, and each of its text
    segments one citation pointing back at it.

    Args:
        sample: Prompt, ground truth and (optionally) the assistant answer.

    Returns:
        Record with a single conversation turn.
    """
    citations: list[dict[str, object]] = []
    passages: list[dict[str, object]] = []
    for attribution in sample.source_attributions:
        citations.extend(
            _citation(segment, attribution) for segment in attribution.text_segments
        )
        passages.append(_reference(attribution))

    return {
        "conversationTurns": [
            {
                "prompt": {"content": [{"text": sample.prompt}]},
                "referenceResponses": [
                    {"content": [{"text": sample.ground_truth}]}
                ],
                "output": {
                    "text": sample.response,
                    "knowledgeBaseIdentifier": KNOWLEDGE_BASE_IDENTIFIER,
                    "retrievedPassages": {"retrievalResults": passages},
                    "citations": citations,
                },
            }
        ]
    }


def serialize_jsonl(samples: Iterable[EvaluationSample]) -> str:
    """Serialize samples as JSON Lines, one compact record per line."""
    return "\n".join(
        json.dumps(build_evaluation_record(sample), ensure_ascii=False)
        for sample in samples
    )

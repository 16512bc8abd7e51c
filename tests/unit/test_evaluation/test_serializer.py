"""Unit tests for evaluation input serialization."""

import json

from src.features.evaluation.models import EvaluationSample
from src.features.evaluation.serializer import build_evaluation_record, serialize_jsonl


def answered_sample() -> EvaluationSample:
    return EvaluationSample.model_validate(
        {
            "prompt": "How do I reset my password?",
            "groundTruth": "Use the self-service portal.",
            "response": "Open the portal and choose Reset.",
            "sourceAttributions": [
                {
                    "title": "Password FAQ",
                    "url": "https://wiki.example.com/faq",
                    "snippet": "Passwords are reset in the portal.",
                    "textMessageSegments": [
                        {
                            "beginOffset": 0,
                            "endOffset": 15,
                            "snippetExcerpt": {"text": "reset in the portal"},
                        }
                    ],
                }
            ],
        }
    )


class TestBuildEvaluationRecord:
    """Tests for the per-sample record."""

    def test_prompt_and_reference(self) -> None:
        """Test prompt and ground truth placement."""
        record = build_evaluation_record(
            EvaluationSample(prompt="Q?", ground_truth="A.")
        )

        turn = record["conversationTurns"][0]  # type: ignore[index]
        assert turn["prompt"] == {"content": [{"text": "Q?"}]}
        assert turn["referenceResponses"] == [{"content": [{"text": "A."}]}]
        assert turn["output"]["text"] == ""
        assert turn["output"]["knowledgeBaseIdentifier"] == "user_knowledge_base"
        assert turn["output"]["citations"] == []

    def test_attributions_become_passages_and_citations(self) -> None:
        """Test each attribution and segment is carried over."""
        record = build_evaluation_record(answered_sample())

        output = record["conversationTurns"][0]["output"]  # type: ignore[index]
        reference = {
            "content": {"text": "Passwords are reset in the portal."},
            "metadata": {
                "title": "Password FAQ",
                "url": "https://wiki.example.com/faq",
            },
        }
        assert output["text"] == "Open the portal and choose Reset."
        assert output["retrievedPassages"] == {"retrievalResults": [reference]}
        assert output["citations"] == [
            {
                "generatedResponsePart": {
                    "textResponsePart": {
                        "span": {"start": 0, "end": 15},
                        "text": "reset in the portal",
                    }
                },
                "retrievedReferences": [reference],
            }
        ]


class TestSerializeJsonl:
    """Tests for JSON Lines output."""

    def test_one_record_per_line(self) -> None:
        """Test line count and that each line parses on its own."""
        samples = [
            EvaluationSample(prompt="Q1", ground_truth="A1"),
            EvaluationSample(prompt="Q2", ground_truth="A2"),
        ]

        lines = serialize_jsonl(samples).split("\n")

        assert len(lines) == 2
        prompts = [
            json.loads(line)["conversationTurns"][0]["prompt"]["content"][0]["text"]
            for line in lines
        ]
        assert prompts == ["Q1", "Q2"]

    def test_unicode_kept(self) -> None:
        """Test non-ASCII text is not escaped."""
        text = serialize_jsonl([EvaluationSample(prompt="Größe?", ground_truth="")])

        assert "Größe?" in text

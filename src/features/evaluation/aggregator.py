"""Result aggregator: find, fetch and average evaluation job output."""

from dataclasses import dataclass

import structlog

from src.features.evaluation.discovery import ResultFileFinder, parse_s3_uri
from src.features.evaluation.errors import (
    FormatError,
    NotFoundError,
    OrchestratorError,
    StageError,
)
from src.features.evaluation.models import (
    AggregatedMetric,
    AggregationResult,
    ConversationTurn,
    EvaluationJob,
    EvaluationSummary,
    JobStatus,
    MetricResult,
)
from src.features.evaluation.protocols import ObjectStoreClient


logger = structlog.get_logger()


@dataclass
class _MetricTotals:
    total: float = 0.0
    count: int = 0
    explanation: str | None = None
    evaluator_model: str | None = None

    def add(self, result: MetricResult) -> None:
        self.total += result.score
        self.count += 1
        if self.explanation is None:
            self.explanation = result.explanation
        if self.evaluator_model is None:
            self.evaluator_model = result.evaluator_model


def metric_category(name: str) -> str:
    """Get the category of a metric (``Builtin.Correctness`` -> ``Correctness``)."""
    parts = name.split(".")
    return parts[1] if len(parts) > 1 and parts[1] else name


def normalize_records(document: object) -> list[dict[str, object]]:
    """Normalize a parsed result document to a list of records.

    Raises:
        FormatError: If the document is neither an object nor an array.
    """
    if isinstance(document, dict):
        return [document]
    if isinstance(document, list):
        return [item for item in document if isinstance(item, dict)]
    msg = f"Result document must be an object or array, got {type(document).__name__}"
    raise FormatError(msg)


def _score(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, dict):
        inner = value.get("score")
        if inner is None:
            inner = value.get("result")
        if isinstance(inner, dict):
            return None
        return _score(inner)
    return None


def _text(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def _first_evaluator(value: dict[str, object]) -> dict[str, object]:
    details = value.get("evaluatorDetails")
    if isinstance(details, list):
        for detail in details:
            if isinstance(detail, dict):
                return detail
    return {}


def _metric_result(name: object, value: object) -> MetricResult | None:
    if not isinstance(name, str) or not name:
        return None
    score = _score(value)
    if score is None:
        return None
    if not isinstance(value, dict):
        return MetricResult(metric_name=name, score=score)
    evaluator = _first_evaluator(value)
    explanation = _text(value.get("explanation")) or _text(
        evaluator.get("explanation")
    )
    return MetricResult(
        metric_name=name,
        score=score,
        explanation=explanation,
        evaluator_model=_text(evaluator.get("modelIdentifier")),
    )


def parse_metric_results(turn: dict[str, object]) -> list[MetricResult]:
    """Extract the metric results of one conversation turn.

    Accepts ``results`` / ``metricResults`` lists of
    ``{metricName, result|score, evaluatorDetails}`` entries, or a
    ``metricResults`` mapping of metric name to number or ``{score}``.
    Entries without a numeric score are skipped.
    """
    raw = turn.get("results")
    if not isinstance(raw, list):
        raw = turn.get("metricResults")

    results: list[MetricResult] = []
    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            result = _metric_result(entry.get("metricName") or entry.get("name"), entry)
            if result is not None:
                results.append(result)
    elif isinstance(raw, dict):
        for name, value in raw.items():
            result = _metric_result(name, value)
            if result is not None:
                results.append(result)
    return results


def _content_text(value: object) -> str:
    """Join the ``content[].text`` parts of a prompt or reference response."""
    if not isinstance(value, dict):
        return value if isinstance(value, str) else ""
    content = value.get("content")
    if not isinstance(content, list):
        return ""
    return "".join(
        part["text"]
        for part in content
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


def parse_turn(turn: dict[str, object]) -> ConversationTurn:
    """Parse one conversation turn of a result record.

    The prompt, references and output are read from ``inputRecord`` when the
    turn wraps its input, and from the turn itself otherwise.
    """
    record = turn.get("inputRecord")
    if not isinstance(record, dict):
        record = turn

    references = record.get("referenceResponses")
    reference = ""
    if isinstance(references, list) and references:
        reference = _content_text(references[0])

    output = turn.get("output") or record.get("output")
    response = ""
    if isinstance(output, dict):
        response = _text(output.get("text")) or ""

    return ConversationTurn(
        prompt=_content_text(record.get("prompt")),
        reference_response=reference,
        response=response,
        metric_results=parse_metric_results(turn),
    )


def summarize_records(
    records: list[dict[str, object]],
    result_key: str,
    output_location: str,
    job: EvaluationJob | None = None,
) -> EvaluationSummary:
    """Average every metric across all turns of all records.

    Records without ``conversationTurns`` contribute their per-record
    ``metrics`` mapping instead. A metric without samples is omitted.

    Args:
        records: Normalized result records.
        result_key: Key of the file the records were read from.
        output_location: Output location that was searched.
        job: Job the results belong to, for status and timestamps.

    Returns:
        EvaluationSummary with metrics sorted by name.
    """
    totals: dict[str, _MetricTotals] = {}
    turns: list[ConversationTurn] = []
    total_turns = 0

    for record in records:
        raw_turns = record.get("conversationTurns")
        if isinstance(raw_turns, list):
            total_turns += len(raw_turns)
            for raw_turn in raw_turns:
                if not isinstance(raw_turn, dict):
                    continue
                turn = parse_turn(raw_turn)
                turns.append(turn)
                for result in turn.metric_results:
                    totals.setdefault(result.metric_name, _MetricTotals()).add(result)
        elif isinstance(record.get("metrics"), dict):
            for name, value in record["metrics"].items():
                result = _metric_result(name, value)
                if result is not None:
                    totals.setdefault(name, _MetricTotals()).add(result)

    metrics = [
        AggregatedMetric(
            name=name,
            average_score=entry.total / entry.count,
            sample_count=entry.count,
            category=metric_category(name),
            explanation=entry.explanation,
            evaluator_model=entry.evaluator_model,
        )
        for name, entry in sorted(totals.items())
        if entry.count > 0
    ]

    completed_at = None
    if job is not None and job.status == JobStatus.COMPLETED:
        completed_at = job.last_modified_at

    return EvaluationSummary(
        metrics=metrics,
        turns=turns,
        total_conversations=len(records),
        total_turns=total_turns,
        result_key=result_key,
        output_location=output_location,
        status=job.status if job else None,
        created_at=job.created_at if job else None,
        completed_at=completed_at,
    )


class ResultAggregator:
    """Discovers the result file of a job and aggregates its metrics.

    Side-effect free; calling it again re-reads and recomputes everything.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        finder: ResultFileFinder | None = None,
    ) -> None:
        self._store = store
        self._finder = finder or ResultFileFinder(store)
        self._log = logger.bind(component="evaluation", subcomponent="aggregator")

    def aggregate(
        self,
        output_s3_uri: str,
        job: EvaluationJob | None = None,
    ) -> AggregationResult:
        """Aggregate the results stored under an output location.

        Args:
            output_s3_uri: ``s3://bucket/prefix`` output location of the job.
            job: Job the results belong to.

        Returns:
            AggregationResult with the summary and raw records, or the error.
        """
        log = self._log.bind(output_location=output_s3_uri)
        try:
            bucket, prefix = parse_s3_uri(output_s3_uri)
            key = self._finder.find(bucket, prefix)
            if key is None:
                msg = f"No result file found under {output_s3_uri}"
                raise NotFoundError(
                    msg, details={"bucket": bucket, "prefix": prefix}
                )
            records = normalize_records(self._store.get_object_json(bucket, key))
            summary = summarize_records(records, key, output_s3_uri, job)
        except OrchestratorError as e:
            log.error(
                "aggregation_failed", error_class=e.error_class.value, error=e.message
            )
            return AggregationResult(error=StageError.from_exception(e))

        log.info(
            "aggregation_complete",
            result_key=key,
            conversations=summary.total_conversations,
            turns=summary.total_turns,
            metrics=len(summary.metrics),
        )
        return AggregationResult(summary=summary, records=records)

"""Loading of ground-truth files into evaluation samples."""

import csv
import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from src.features.evaluation.errors import ConfigError
from src.features.evaluation.models import EvaluationSample


logger = structlog.get_logger()

REQUIRED_COLUMNS = ("prompt", "groundTruth")
SUPPORTED_EXTENSIONS = (".csv", ".json", ".jsonl")


def _read_csv(path: Path) -> list[dict[str, object]]:
    with path.open(encoding="utf-8-sig", newline="") as f:
        return [
            {k: v for k, v in row.items() if k is not None}
            for row in csv.DictReader(f)
        ]


def _read_json(path: Path) -> list[object]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        msg = f"{path.name} must contain a JSON array of rows"
        raise ConfigError(msg, details={"path": str(path)})
    return data


def _read_jsonl(path: Path) -> list[object]:
    with path.open(encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def load_ground_truth(path: Path | str) -> tuple[EvaluationSample, ...]:
    """Load prompt / ground-truth pairs from a CSV, JSON or JSON Lines file.

    Rows whose prompt is blank are skipped. JSON rows may also carry a
    ``response`` and ``sourceAttributions`` from a previous chat run.

    Args:
        path: File to load.

    Returns:
        Samples in file order.

    Raises:
        ConfigError: If the file is missing, unsupported, empty, unparsable,
            or lacks the ``prompt`` / ``groundTruth`` columns.
    """
    path = Path(path)
    log = logger.bind(component="evaluation", subcomponent="loader")
    details: dict[str, str | int | float | bool | None] = {"path": str(path)}

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        msg = f"Unsupported ground-truth file type: {path.suffix or path.name}"
        raise ConfigError(msg, details=details)
    if not path.is_file():
        msg = f"Ground-truth file not found: {path}"
        raise ConfigError(msg, details=details)

    try:
        if suffix == ".csv":
            rows: list[object] = list(_read_csv(path))
        elif suffix == ".json":
            rows = _read_json(path)
        else:
            rows = _read_jsonl(path)
    except (json.JSONDecodeError, csv.Error, UnicodeDecodeError) as e:
        msg = f"Failed to parse {path.name}: {e}"
        raise ConfigError(msg, details=details) from e

    if not rows:
        msg = f"{path.name} is empty or has no data"
        raise ConfigError(msg, details=details)

    first = rows[0]
    if not isinstance(first, dict) or any(col not in first for col in REQUIRED_COLUMNS):
        msg = f'{path.name} must contain "prompt" and "groundTruth" columns'
        raise ConfigError(msg, details=details)

    samples: list[EvaluationSample] = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            msg = f"Row {index + 1} of {path.name} is not an object"
            raise ConfigError(msg, details=details)
        prompt = str(row.get("prompt") or "")
        if not prompt.strip():
            continue
        try:
            samples.append(
                EvaluationSample.model_validate(
                    {
                        **row,
                        "prompt": prompt,
                        "groundTruth": str(row.get("groundTruth") or ""),
                        "response": str(row.get("response") or ""),
                    }
                )
            )
        except ValidationError as e:
            msg = f"Row {index + 1} of {path.name} is invalid: {e.error_count()} errors"
            raise ConfigError(msg, details=details) from e

    log.info(
        "ground_truth_loaded",
        path=str(path),
        rows=len(rows),
        samples=len(samples),
        skipped=len(rows) - len(samples),
    )
    return tuple(samples)

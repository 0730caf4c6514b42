"""
Quality score for a dataset.

The score blends four ratios taken from the issue detector, each clamped
to [0, 1]:

    completeness      0.4   1 - empty cells / total cells
    uniqueness        0.3   1 - duplicate rows / rows
    type_consistency  0.2   1 - inconsistent columns / columns
    outlier_free      0.1   1 - outlier values / rows

The weighted total is reported as a rounded percentage; below 70 is
"low", below 90 "medium", anything else "high".
"""

from typing import Optional

from dataops.models.schemas import DataIssueReport, Dataset, QualityScore
from dataops.services.scanner import detect_issues
from dataops.services.type_inference import get_columns


WEIGHTS = {
    'completeness': 0.4,
    'uniqueness': 0.3,
    'type_consistency': 0.2,
    'outlier_free': 0.1,
}


def quality_level(score: int) -> str:
    if score < 70:
        return "low"
    if score < 90:
        return "medium"
    return "high"


def calculate_quality_score(rows: Dataset, issues: Optional[DataIssueReport] = None) -> QualityScore:
    """
    Compute the weighted quality score of a dataset.

    Args:
        rows: The dataset to score
        issues: A report already computed for ``rows`` (detected here if omitted)

    Returns:
        QualityScore; an empty dataset scores 0 ("low").
    """
    columns = get_columns(rows)
    if not rows or not columns:
        return QualityScore()

    if issues is None:
        issues = detect_issues(rows)

    total_cells = len(rows) * len(columns)
    outlier_count = sum(len(values) for values in issues.outliers.values())

    components = {
        'completeness': max(0.0, 1 - sum(issues.null_values.values()) / total_cells),
        'uniqueness': max(0.0, 1 - issues.duplicate_rows / len(rows)),
        'type_consistency': max(0.0, 1 - len(issues.inconsistent_types) / len(columns)),
        'outlier_free': max(0.0, 1 - outlier_count / len(rows)),
    }
    score = round(sum(WEIGHTS[name] * value for name, value in components.items()) * 100)

    return QualityScore(
        score=score,
        level=quality_level(score),
        **{name: round(value, 4) for name, value in components.items()},
    )

"""
Prediction Module
=================

Applies the fitted models to the unlabeled submission table and checks
how far the models agree with each other.

Features:
    - Per-model predictions for every submission problem
    - Row-level and pairwise agreement between models
    - Majority-vote consensus
    - Export of predictions to CSV, one answer file per problem and a JSON report
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .model import ActivityClassifier

logger = logging.getLogger(__name__)


def predict_submission(
    models: Dict[str, ActivityClassifier],
    X_submission: pd.DataFrame,
    submission_ids: Optional[pd.Series] = None
) -> pd.DataFrame:
    """
    Predict every submission row with every model.

    Args:
        models: Mapping of algorithm name to trained model
        X_submission: Submission predictors, already column-filtered
        submission_ids: Problem identifiers aligned with X_submission

    Returns:
        DataFrame indexed by problem id with one column per model
    """
    if not models:
        raise ValueError("No models to predict with")

    if submission_ids is None:
        index = pd.Index(np.arange(1, len(X_submission) + 1), name='problem_id')
    else:
        index = pd.Index(submission_ids.values, name=submission_ids.name or 'problem_id')

    predictions = pd.DataFrame(index=index)
    for name, model in models.items():
        predictions[name] = model.predict(X_submission)
        logger.info(f"{model.label}: predicted {len(X_submission)} submission rows")

    return predictions


def majority_vote(row: pd.Series, priority: Optional[List[str]] = None) -> Any:
    """
    Most frequent value in a row of model predictions.

    Ties go to the value predicted by the earliest model in priority
    (default: column order).
    """
    counts = row.value_counts()
    tied = set(counts[counts == counts.max()].index)
    for name in (priority or list(row.index)):
        if name in row.index and row[name] in tied:
            return row[name]
    return counts.index[0]


def compare_predictions(
    predictions: pd.DataFrame,
    priority: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Measure agreement between the models' submission predictions.

    Args:
        predictions: DataFrame from predict_submission
        priority: Model names ordered best first, used to break voting ties

    Returns:
        Dictionary containing:
            - all_agree: Boolean Series, True where every model agrees
            - agreement_rate: Share of rows on which every model agrees
            - pairwise_agreement: Model × model DataFrame of agreement shares
            - consensus: Majority-vote Series
            - disagreements: Rows where the models differ
    """
    if predictions.shape[1] == 0:
        raise ValueError("Predictions table has no model columns")

    all_agree = predictions.nunique(axis=1) == 1

    names = list(predictions.columns)
    pairwise = pd.DataFrame(1.0, index=names, columns=names)
    for i, a in enumerate(names):
        for b in names[i + 1:]:
            share = float((predictions[a] == predictions[b]).mean()) if len(predictions) else 1.0
            pairwise.loc[a, b] = share
            pairwise.loc[b, a] = share

    consensus = predictions.apply(lambda row: majority_vote(row, priority), axis=1)
    consensus.name = 'consensus'

    return {
        'all_agree': all_agree,
        'agreement_rate': float(all_agree.mean()) if len(all_agree) else 1.0,
        'pairwise_agreement': pairwise,
        'consensus': consensus,
        'disagreements': predictions[~all_agree]
    }


def export_predictions(
    predictions: pd.DataFrame,
    output_path: str,
    filename: str = "submission_predictions.csv"
) -> str:
    """
    Export predictions to CSV file.

    Args:
        predictions: Predictions table, one column per model
        output_path: Directory to save the file
        filename: Name of the CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    filepath = output_path / filename
    predictions.to_csv(filepath)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def write_answer_files(answers: pd.Series, output_path: str) -> List[str]:
    """
    Write one text file per problem holding its predicted class.

    Files are named problem_id_<id>.txt.

    Args:
        answers: Predicted class indexed by problem id
        output_path: Directory to write the files to

    Returns:
        List of written file paths
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    paths = []
    for problem_id, answer in answers.items():
        filepath = output_path / f"problem_id_{problem_id}.txt"
        with open(filepath, 'w') as f:
            f.write(str(answer))
        paths.append(str(filepath))

    logger.info(f"Wrote {len(paths)} answer files to {output_path}")
    return paths


def generate_prediction_report(
    predictions: pd.DataFrame,
    agreement: Dict[str, Any],
    answers: pd.Series,
    answer_source: str,
    comparison: Optional[pd.DataFrame] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate a prediction report.

    Args:
        predictions: Predictions table
        agreement: Result of compare_predictions
        answers: Final answer per problem
        answer_source: Model (or 'consensus') the answers come from
        comparison: Model comparison table (optional)
        output_path: Path to save the report as JSON (optional)

    Returns:
        Report dictionary
    """
    report = {
        'generated_at': datetime.now().isoformat(),
        'models': list(predictions.columns),
        'answer_source': answer_source,
        'answers': {str(k): str(v) for k, v in answers.items()},
        'predictions': {
            str(idx): {name: str(value) for name, value in row.items()}
            for idx, row in predictions.iterrows()
        },
        'agreement': {
            'agreement_rate': agreement['agreement_rate'],
            'n_disagreements': int(len(agreement['disagreements'])),
            'disagreeing_problems': [str(i) for i in agreement['disagreements'].index],
            'pairwise': {
                a: {b: float(v) for b, v in row.items()}
                for a, row in agreement['pairwise_agreement'].iterrows()
            }
        }
    }

    if comparison is not None:
        report['expected_out_of_sample_error'] = {
            str(name): float(err) for name, err in comparison['out_of_sample_error'].items()
        }

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    models: Dict[str, ActivityClassifier],
    X_submission: pd.DataFrame,
    submission_ids: Optional[pd.Series] = None,
    comparison: Optional[pd.DataFrame] = None,
    output_dir: str = "data/predictions/"
) -> Dict[str, Any]:
    """
    Execute the complete submission prediction workflow.

    This function:
    1. Predicts the submission rows with every model
    2. Compares the models' predictions
    3. Picks the answers of the most accurate model (or the consensus
       when no comparison is available)
    4. Exports results

    Args:
        models: Trained models
        X_submission: Column-filtered submission predictors
        submission_ids: Problem identifiers
        comparison: Model comparison table from compare_models (optional)
        output_dir: Directory for output files

    Returns:
        Dictionary containing predictions, agreement, answers and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING SUBMISSION PREDICTION")
    logger.info("=" * 60)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    predictions = predict_submission(models, X_submission, submission_ids)

    priority = None
    if comparison is not None:
        priority = [name for name in comparison.index if name in predictions.columns]

    agreement = compare_predictions(predictions, priority=priority)

    if priority:
        answer_source = priority[0]
        answers = predictions[answer_source].rename('answer')
    else:
        answer_source = 'consensus'
        answers = agreement['consensus'].rename('answer')

    csv_path = export_predictions(
        predictions.assign(consensus=agreement['consensus']), str(output_dir)
    )
    answer_paths = write_answer_files(answers, str(output_dir / "answers"))

    report_path = output_dir / "prediction_report.json"
    report = generate_prediction_report(
        predictions, agreement, answers, answer_source, comparison,
        output_path=str(report_path)
    )

    result = {
        'predictions': predictions,
        'agreement': agreement,
        'answers': answers,
        'answer_source': answer_source,
        'csv_path': csv_path,
        'answer_paths': answer_paths,
        'report_path': str(report_path),
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Models: {list(predictions.columns)}")
    logger.info(f"  Agreement rate: {agreement['agreement_rate']:.2%}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    predictions = result['predictions']
    agreement = result['agreement']

    print("\n" + "=" * 70)
    print("SUBMISSION PREDICTIONS")
    print("=" * 70)

    table = predictions.assign(consensus=agreement['consensus'], agree=agreement['all_agree'])
    print(table.to_string())

    print("-" * 70)
    print(f"\nAll models agree on {agreement['all_agree'].sum()} of {len(predictions)} "
          f"problems ({agreement['agreement_rate']:.1%})")

    print("\nPairwise agreement:")
    print(agreement['pairwise_agreement'].round(3).to_string())

    print(f"\nAnswers taken from: {result['answer_source']}")
    print(" ".join(str(a) for a in result['answers'].values))
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Full report saved to: {result['report_path']}")
    print("=" * 70 + "\n")

#!/usr/bin/env python3
"""
Weight Lifting Exercise Quality Report - Main Pipeline
=======================================================

Orchestrates the complete ML report for exercise quality classification.

Phases:
    1. Fetch - Download the training and submission CSV files
    2. Preprocessing - Column filtering and stratified split
    3. EDA - Exploratory Data Analysis of the retained predictors
    4. Training - Decision tree, gradient boosting and random forest
    5. Evaluation - Accuracy and out-of-sample error comparison
    6. Prediction - Submission predictions and model agreement

Usage:
    # Run complete pipeline
    python main.py

    # Run specific phase
    python main.py --phase eda

    # Run with custom config
    python main.py --config config/custom.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Tuple

import pandas as pd
import matplotlib.pyplot as plt

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from activity_quality.data_loader import (
    load_config, fetch_datasets, load_data, validate_data, print_data_summary
)
from activity_quality.eda import (
    generate_eda_report, print_correlation_insights, plot_feature_importances
)
from activity_quality.preprocessing import preprocess_pipeline, print_preprocessing_summary
from activity_quality.model import train_models, print_model_summary, ActivityClassifier
from activity_quality.evaluation import (
    evaluate_model, compare_models, select_best_model, plot_model_comparison,
    print_evaluation_report, print_model_comparison
)
from activity_quality.prediction import run_final_prediction, print_prediction_results


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def run_fetch(config: Dict[str, Any]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Execute Phase 1: download and load both tables.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (labeled DataFrame, submission DataFrame)
    """
    print("\n" + "=" * 70)
    print("PHASE 1: FETCH DATA")
    print("=" * 70)

    data_config = config.get('data', {})
    label_column = data_config.get('label_column', 'classe')
    na_values = data_config.get('na_values')

    training_path, submission_path = fetch_datasets(config)

    labeled = load_data(training_path, na_values=na_values)
    submission = load_data(submission_path, na_values=na_values)

    print("\n📊 Labeled data")
    print_data_summary(labeled, label_column)
    validate_data(labeled, label_column=label_column, strict=True)

    print("📊 Submission data")
    print_data_summary(submission, label_column=None)
    validate_data(submission, label_column=None, strict=False)

    return labeled, submission


def run_preprocessing(
    labeled: pd.DataFrame,
    submission: pd.DataFrame,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: Column filtering and train/test split.

    Args:
        labeled: Raw labeled data
        submission: Raw submission data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    data_config = config.get('data', {})
    prep_config = config.get('preprocessing', {})
    models_path = Path(config.get('output', {}).get('models_path', 'models/'))
    models_path.mkdir(parents=True, exist_ok=True)

    result = preprocess_pipeline(
        labeled,
        submission,
        n_leading_columns=prep_config.get('n_leading_columns', 7),
        missing_threshold=prep_config.get('missing_threshold', 0.95),
        freq_cut=prep_config.get('freq_cut', 95 / 5),
        unique_cut=prep_config.get('unique_cut', 10.0),
        train_fraction=prep_config.get('train_fraction', 0.7),
        random_state=config.get('model', {}).get('random_state', 12345),
        label_column=data_config.get('label_column', 'classe'),
        id_column=data_config.get('id_column', 'problem_id'),
        save_filter=str(models_path / 'column_filter.joblib')
    )

    print_preprocessing_summary(result)

    return result


def run_eda(
    labeled: pd.DataFrame,
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 3: Exploratory Data Analysis on the retained predictors.

    Args:
        labeled: Raw labeled data
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 3: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    label_column = config.get('data', {}).get('label_column', 'classe')
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')
    threshold = config.get('eda', {}).get('correlation_threshold', 0.8)

    X = prep_result['column_filter'].transform(labeled)
    subjects = labeled['user_name'] if 'user_name' in labeled.columns else None

    report = generate_eda_report(
        X, labeled[label_column], subjects=subjects,
        output_dir=output_dir, correlation_threshold=threshold, show_plots=False
    )

    print_correlation_insights(report['correlated_pairs'], threshold)
    print(f"Most class-separating predictors: {report['top_predictors']}")

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, ActivityClassifier]:
    """
    Execute Phase 4: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Trained models keyed by algorithm name
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL TRAINING")
    print("=" * 70)

    output_config = config.get('output', {})
    models_path = output_config.get('models_path', 'models/')
    figures_path = Path(output_config.get('figures_path', 'reports/figures/'))
    figures_path.mkdir(parents=True, exist_ok=True)

    models = train_models(
        prep_result['X_train'],
        prep_result['y_train'],
        config,
        model_dir=models_path
    )

    for name, model in models.items():
        print_model_summary(model)
        if hasattr(model.model, 'feature_importances_'):
            fig = plot_feature_importances(
                model.get_feature_importances(),
                title=f'{model.label} - Feature Importances',
                save_path=str(figures_path / f"importances_{name}.png")
            )
            plt.close(fig)

    return models


def run_evaluation(
    models: Dict[str, ActivityClassifier],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Model Evaluation.

    Args:
        models: Trained models
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary with per-model results and comparison
    """
    print("\n" + "=" * 70)
    print("PHASE 5: MODEL EVALUATION")
    print("=" * 70)

    output_config = config.get('output', {})
    figures_dir = output_config.get('figures_path', 'reports/figures/')
    metrics_dir = output_config.get('metrics_path', 'reports/metrics/')

    results = {}
    for name, model in models.items():
        results[name] = evaluate_model(
            model,
            prep_result['X_test'],
            prep_result['y_test'],
            figures_dir=figures_dir,
            metrics_dir=metrics_dir,
            show_plots=False
        )
        print_evaluation_report(model.label, results[name]['metrics'])

    comparison = compare_models(results)
    print_model_comparison(comparison)

    fig = plot_model_comparison(
        comparison, save_path=str(Path(figures_dir) / "model_comparison.png")
    )
    plt.close(fig)

    return {'results': results, 'comparison': comparison}


def run_final_prediction_phase(
    models: Dict[str, ActivityClassifier],
    prep_result: Dict[str, Any],
    eval_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 6: Submission Prediction.

    Args:
        models: Trained models
        prep_result: Preprocessing result dictionary
        eval_result: Evaluation result with comparison table
        config: Configuration dictionary

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 6: SUBMISSION PREDICTION")
    print("=" * 70)

    output_dir = config.get('output', {}).get('predictions_path', 'data/predictions/')

    result = run_final_prediction(
        models=models,
        X_submission=prep_result['X_submission'],
        submission_ids=prep_result['submission_ids'],
        comparison=eval_result['comparison'],
        output_dir=output_dir
    )

    print_prediction_results(result)

    return result


def run_full_pipeline(
    config_path: str = "config/config.yaml",
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute the complete pipeline.

    Args:
        config_path: Path to configuration file
        verbose: Log at DEBUG level regardless of the configured level

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("WEIGHT LIFTING EXERCISE QUALITY REPORT")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config.get('logging', {}).get('level', 'INFO'))

    labeled, submission = run_fetch(config)

    results = {
        'config': config,
        'data_shape': labeled.shape,
        'submission_shape': submission.shape
    }

    results['preprocessing'] = run_preprocessing(labeled, submission, config)
    results['eda'] = run_eda(labeled, results['preprocessing'], config)
    results['models'] = run_training(results['preprocessing'], config)
    results['evaluation'] = run_evaluation(results['models'], results['preprocessing'], config)
    results['prediction'] = run_final_prediction_phase(
        results['models'], results['preprocessing'], results['evaluation'], config
    )

    comparison = results['evaluation']['comparison']
    best = select_best_model(comparison)

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {labeled.shape[0]} rows × {labeled.shape[1]} columns")
    print(f"  • Predictors kept: {len(results['preprocessing']['feature_names'])}")
    print(f"  • Best model: {comparison.loc[best, 'label']} "
          f"(accuracy {comparison.loc[best, 'accuracy']:.4f}, "
          f"out-of-sample error {comparison.loc[best, 'out_of_sample_error']:.4f})")
    print(f"  • Submission agreement: {results['prediction']['agreement']['agreement_rate']:.1%}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    config_path: str = "config/config.yaml",
    verbose: bool = False
) -> Any:
    """
    Execute a single phase of the pipeline, running its prerequisites first.

    Args:
        phase: Phase to run ('fetch', 'eda', 'preprocess', 'train', 'evaluate', 'predict')
        config_path: Path to configuration file
        verbose: Log at DEBUG level regardless of the configured level

    Returns:
        Phase result
    """
    if phase == 'predict':
        return run_full_pipeline(config_path, verbose)

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config.get('logging', {}).get('level', 'INFO'))

    if phase not in ('fetch', 'eda', 'preprocess', 'train', 'evaluate'):
        raise ValueError(
            f"Unknown phase: {phase}. Choose from: fetch, eda, preprocess, train, evaluate, predict"
        )

    labeled, submission = run_fetch(config)
    if phase == 'fetch':
        return {'labeled': labeled, 'submission': submission}

    prep_result = run_preprocessing(labeled, submission, config)
    if phase == 'eda':
        return run_eda(labeled, prep_result, config)
    if phase == 'preprocess':
        return prep_result

    models = run_training(prep_result, config)
    if phase == 'train':
        return {'models': models, 'preprocessing': prep_result}

    return run_evaluation(models, prep_result, config)


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Weight Lifting Exercise Quality Report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --phase eda
  python main.py --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['fetch', 'eda', 'preprocess', 'train', 'evaluate', 'predict', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        if args.phase == 'all':
            run_full_pipeline(args.config, args.verbose)
        else:
            run_single_phase(args.phase, args.config, args.verbose)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

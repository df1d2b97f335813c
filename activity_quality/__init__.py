"""
Weight Lifting Exercise Quality Report
=======================================

A machine learning report that classifies how well a barbell lift was
performed from on-body accelerometer readings.

Modules:
    - data_loader: Dataset download, CSV ingestion and validation
    - eda: Exploratory Data Analysis
    - preprocessing: Column filtering and stratified train/test splitting
    - model: Generic training wrapper around scikit-learn classifiers
    - evaluation: Accuracy, out-of-sample error and model comparison
    - prediction: Submission predictions and cross-model agreement
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"

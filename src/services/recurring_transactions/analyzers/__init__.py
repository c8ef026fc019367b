"""
Pattern analyzers for recurring transaction detection.

This package provides specialized analyzers that infer, validate, score and
filter candidate recurring patterns.
"""

from services.recurring_transactions.analyzers.cadence import (
    CadenceAnalyzer,
    CadenceContext,
    EvidencePool,
    DEFAULT_EVIDENCE_POOLS,
)
from services.recurring_transactions.analyzers.validation import PatternValidator, ValidationResult
from services.recurring_transactions.analyzers.confidence import ConfidenceScoreCalculator
from services.recurring_transactions.analyzers.retail import RetailProfile, RetailSuppressionAnalyzer
from services.recurring_transactions.analyzers.variable_amount import VariableAmountAnalyzer

__all__ = [
    'CadenceAnalyzer',
    'CadenceContext',
    'EvidencePool',
    'DEFAULT_EVIDENCE_POOLS',
    'PatternValidator',
    'ValidationResult',
    'ConfidenceScoreCalculator',
    'RetailProfile',
    'RetailSuppressionAnalyzer',
    'VariableAmountAnalyzer',
]

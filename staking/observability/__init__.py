# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides metrics for reward pools.
"""

from .metrics import metrics_registry, update_metrics

__all__ = ['metrics_registry', 'update_metrics']

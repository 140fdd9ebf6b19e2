"""
Motion estimation backends.

Usage:
    from flowmask.flow import get_flow, list_flows

    # List available dense backends
    list_flows()

    # Create a backend
    flow = get_flow("farneback")
    flow = get_flow("neural", device="cuda")
"""

from .base import DenseFlow
from .sparse import SparseFeatureFlow, estimate_translation
from .farneback import FarnebackFlow
from .neural import NeuralFlow
from .registry import (
    get_flow,
    list_flows,
    register_flow,
    get_available_flows,
    FLOW_REGISTRY,
)

__all__ = [
    "DenseFlow",
    "SparseFeatureFlow",
    "estimate_translation",
    "FarnebackFlow",
    "NeuralFlow",
    "get_flow",
    "list_flows",
    "register_flow",
    "get_available_flows",
    "FLOW_REGISTRY",
]

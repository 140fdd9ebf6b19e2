"""
Dense flow backend registry.

Makes it easy to:
- Add new dense flow backends
- List available backends
- Instantiate backends by name
"""

from typing import Dict, Type, Any
from .base import DenseFlow
from .farneback import FarnebackFlow
from .neural import NeuralFlow


# Registry structure: name -> {class, description, metadata}
FLOW_REGISTRY: Dict[str, Dict[str, Any]] = {
    "farneback": {
        "class": FarnebackFlow,
        "description": "Farneback polynomial-expansion flow (CPU, no weights)",
        "source": "https://docs.opencv.org/4.x/dc/d6b/group__video__track.html",
        "notes": "3 pyramid levels, 0.5 scale, 15px window, 3 iterations",
    },
    "neural": {
        "class": NeuralFlow,
        "description": "Fixed-resolution neural flow estimator (TorchScript, e.g. exported RAFT)",
        "source": "https://github.com/princeton-vl/RAFT",
        "notes": "Requires weights: <FLOWMASK_WEIGHTS_DIR>/dense-neural-flow.pt",
    },
}


def register_flow(
    name: str,
    flow_class: Type[DenseFlow],
    description: str,
    source: str = "",
    **metadata
):
    """
    Register a new dense flow backend.

    Args:
        name: Unique identifier (e.g., "my-flow")
        flow_class: Class that implements the DenseFlow interface
        description: Short description of the backend
        source: URL to paper or GitHub repo
        **metadata: Additional metadata (notes, etc.)
    """
    if name in FLOW_REGISTRY:
        raise ValueError(f"Flow backend '{name}' already registered")

    if not issubclass(flow_class, DenseFlow):
        raise TypeError("flow_class must inherit from DenseFlow")

    FLOW_REGISTRY[name] = {
        "class": flow_class,
        "description": description,
        "source": source,
        **metadata
    }


def get_flow(name: str, **kwargs) -> DenseFlow:
    """
    Instantiate a dense flow backend by name.

    Args:
        name: Backend name from registry
        **kwargs: Arguments passed to the backend constructor
                 (e.g., winsize=21, or weight_loader=... for "neural")

    Returns:
        DenseFlow instance (not yet initialized)

    Example:
        flow = get_flow("farneback", levels=4)
    """
    if name not in FLOW_REGISTRY:
        available = ", ".join(FLOW_REGISTRY.keys())
        raise ValueError(
            f"Unknown flow backend '{name}'.\n"
            f"Available flow backends: {available}\n"
            f"Run 'flowmask --list-flows' to see details."
        )

    flow_class = FLOW_REGISTRY[name]["class"]
    return flow_class(**kwargs)


def list_flows(verbose: bool = False) -> None:
    """
    Print available dense flow backends and their details.

    Args:
        verbose: If True, show additional metadata
    """
    print("\nAvailable flow backends:\n")

    for name, info in FLOW_REGISTRY.items():
        print(f"  {name}")
        print(f"    {info['description']}")

        if verbose and info.get('source'):
            print(f"    Source: {info['source']}")

        if verbose and info.get('notes'):
            print(f"    Notes: {info['notes']}")

        print()


def get_available_flows() -> list[str]:
    """Return list of available flow backend names."""
    return list(FLOW_REGISTRY.keys())

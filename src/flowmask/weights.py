"""
Model weight loading.

The engine treats weights as an opaque byte blob keyed by model id. Fetching
and caching belong to a loader; anything callable as `loader(model_id) -> bytes`
works. Any failure to obtain bytes surfaces as BackendUnavailable.
"""

import logging
import os
from pathlib import Path
from typing import Callable

from .errors import BackendUnavailable

log = logging.getLogger(__name__)

WeightLoader = Callable[[str], bytes]

_ENV_WEIGHTS_DIR = os.getenv("FLOWMASK_WEIGHTS_DIR")
_DEFAULT_WEIGHTS_DIR = Path.home() / ".cache" / "flowmask"


class DirectoryWeightLoader:
    """Reads `<root>/<model_id><suffix>` from a local directory."""

    def __init__(self, root, suffix: str = ".pt"):
        self.root = Path(root).expanduser()
        self.suffix = suffix

    def path_for(self, model_id: str) -> Path:
        return self.root / f"{model_id}{self.suffix}"

    def __call__(self, model_id: str) -> bytes:
        path = self.path_for(model_id)
        try:
            blob = path.read_bytes()
        except OSError as e:
            raise BackendUnavailable(
                f"Weights for '{model_id}' not found at {path}.\n"
                f"Place the exported model there or set FLOWMASK_WEIGHTS_DIR."
            ) from e
        log.debug("loaded %d bytes of weights for %s from %s", len(blob), model_id, path)
        return blob


def default_weight_loader() -> DirectoryWeightLoader:
    return DirectoryWeightLoader(_ENV_WEIGHTS_DIR or _DEFAULT_WEIGHTS_DIR)


def fetch_weights(loader: WeightLoader, model_id: str) -> bytes:
    """Call `loader` and normalize every failure into BackendUnavailable."""
    try:
        blob = loader(model_id)
    except BackendUnavailable:
        raise
    except Exception as e:
        raise BackendUnavailable(f"Weight loader failed for '{model_id}': {e}") from e
    if not blob:
        raise BackendUnavailable(f"Weight loader returned no bytes for '{model_id}'")
    return bytes(blob)

"""Remote image generation backend for the MDX blog editor.

The package exposes the generation saga and the thin HTTP facade that the
editor calls to regenerate hero and in-blog images.
"""

from .generation.generation_models import (
    Applied,
    Failed,
    GenerationRequest,
    SagaConfig,
    SagaResult,
    SagaStage,
)
from .generation.saga import GenerationSaga, run_generation_saga

__all__ = [
    "Applied",
    "Failed",
    "GenerationRequest",
    "GenerationSaga",
    "SagaConfig",
    "SagaResult",
    "SagaStage",
    "run_generation_saga",
]

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union

from ..models import EmbeddingsResponse

logger = logging.getLogger(__name__)


@dataclass
class SentenceTransformersEmbeddings:
    """Local embeddings model backed by sentence-transformers.

    Errors raised by the model are reported as an ``error`` response rather
    than propagated.
    """
    model_id: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"
    batch_size: int = 32
    max_tokens: int = 8000

    def __post_init__(self) -> None:
        # Suppress harmless multiprocessing resource tracker warnings on macOS
        import warnings
        warnings.filterwarnings("ignore", message="resource_tracker: There appear to be.*leaked semaphore")

        from sentence_transformers import SentenceTransformer  # type: ignore
        self._model = SentenceTransformer(self.model_id, device=self.device)
        # Determine dims from a small encode
        v = self._model.encode(["dimension_probe"], batch_size=1, convert_to_numpy=True, normalize_embeddings=True)
        self.dims = int(v.shape[1])

    def create_embeddings(self, inputs: Union[str, Sequence[str]]) -> EmbeddingsResponse:
        texts = [inputs] if isinstance(inputs, str) else list(inputs)
        try:
            vectors = self._model.encode(texts, batch_size=self.batch_size, convert_to_numpy=True, normalize_embeddings=True)
        except Exception as e:
            logger.warning(f"Embedding {len(texts)} inputs with {self.model_id} failed: {e}")
            return EmbeddingsResponse(status="error", message=str(e), model=self.model_id)
        return EmbeddingsResponse(
            status="success",
            output=[[float(x) for x in row] for row in vectors],
            model=self.model_id,
            usage={"inputs": len(texts)},
        )

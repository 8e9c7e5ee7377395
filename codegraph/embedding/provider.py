"""
Embedding provider interface.

A provider turns text into fixed-dimension vectors. The graph only
relies on the model name (which keys stored vectors) and the dimension.
"""

from abc import ABC, abstractmethod
from typing import List

import numpy as np


class EmbeddingProvider(ABC):
    """
    Abstract text embedding model.

    Implementations raise EmbeddingError when a text cannot be embedded.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identity of the model; vectors are stored per model name."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of the vectors this provider returns."""
        pass

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        pass

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """Embed several texts; the default embeds them one by one."""
        return [self.embed(text) for text in texts]

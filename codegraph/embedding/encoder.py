"""
Transformer-backed embedding provider.

Uses pre-trained transformer models to turn symbol payload text into
mean-pooled vector representations.
"""

import logging
from pathlib import Path
from typing import List

import numpy as np
import torch
from transformers import AutoModel, AutoTokenizer

from codegraph.core.config import EmbeddingConfig
from codegraph.core.exceptions import EmbeddingError
from codegraph.embedding.provider import EmbeddingProvider

logger = logging.getLogger(__name__)


class TransformerEmbeddingProvider(EmbeddingProvider):
    """
    Generates semantic embeddings for code using pre-trained models.

    Supports code-specialized transformer models such as CodeBERT,
    GraphCodeBERT and UniXCoder. The model is loaded on first use.
    """

    def __init__(self, config: EmbeddingConfig = None):
        self.config = config or EmbeddingConfig()
        self.model = None
        self.tokenizer = None
        self.device = self._get_device()
        self._embedding_dim = None

    def _get_device(self) -> str:
        """Determine the optimal device for inference."""
        if self.config.device != "auto":
            return self.config.device

        if torch.cuda.is_available():
            return "cuda"
        elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            return "mps"
        return "cpu"

    @property
    def model_name(self) -> str:
        return self.config.model_name

    @property
    def dimension(self) -> int:
        """Get the embedding dimension of the loaded model."""
        if self._embedding_dim is None:
            self.load_model()
        return self._embedding_dim

    def load_model(self) -> None:
        """
        Load the transformer model and tokenizer.

        Raises:
            EmbeddingError: If the model cannot be loaded.
        """
        if self.model is not None:
            return

        model_name = self.config.model_name
        cache_dir = Path(self.config.model_cache_dir)
        cache_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Loading model: {model_name} on device: {self.device}")

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(
                model_name,
                cache_dir=str(cache_dir),
                trust_remote_code=True,
            )

            self.model = AutoModel.from_pretrained(
                model_name,
                cache_dir=str(cache_dir),
                trust_remote_code=True,
            )

            self.model.to(self.device)
            self.model.eval()

            self._embedding_dim = self.model.config.hidden_size

        except (OSError, ValueError, RuntimeError) as e:
            self.model = None
            self.tokenizer = None
            raise EmbeddingError(
                f"Failed to load model {model_name}: {e}",
                details={"model": model_name, "device": self.device},
            ) from e

        logger.info(
            f"Model loaded successfully. "
            f"Embedding dimension: {self._embedding_dim}"
        )

    def embed(self, text: str) -> np.ndarray:
        """
        Encode a text string to a vector embedding.

        Args:
            text: Text to encode.

        Returns:
            Embedding vector as numpy array.
        """
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """
        Encode multiple texts in batches.

        Args:
            texts: List of texts to encode.

        Returns:
            List of embedding vectors in input order.
        """
        if self.model is None:
            self.load_model()

        embeddings = []
        batch_size = self.config.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]
            try:
                embeddings.extend(self._encode(batch))
            except RuntimeError as e:
                raise EmbeddingError(
                    f"Inference failed: {e}", details={"batch_size": len(batch)}
                ) from e

        return embeddings

    def _encode(self, batch: List[str]) -> List[np.ndarray]:
        inputs = self.tokenizer(
            batch,
            max_length=self.config.max_token_length,
            truncation=True,
            padding=True,
            return_tensors="pt",
        )

        inputs = {k: v.to(self.device) for k, v in inputs.items()}

        with torch.no_grad():
            outputs = self.model(**inputs)

            batch_embeddings = outputs.last_hidden_state
            attention_mask = inputs["attention_mask"]

            mask_expanded = attention_mask.unsqueeze(-1).expand(
                batch_embeddings.size()
            )
            sum_embeddings = torch.sum(batch_embeddings * mask_expanded, dim=1)
            sum_mask = torch.clamp(mask_expanded.sum(dim=1), min=1e-9)
            pooled = sum_embeddings / sum_mask

        return [emb for emb in pooled.cpu().numpy()]

    def unload_model(self) -> None:
        """Unload the model to free memory."""
        if self.model is not None:
            del self.model
            del self.tokenizer
            self.model = None
            self.tokenizer = None

            if torch.cuda.is_available():
                torch.cuda.empty_cache()

            logger.info("Model unloaded")

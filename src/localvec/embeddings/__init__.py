from .sentence_transformers import SentenceTransformersEmbeddings

__all__ = ["SentenceTransformersEmbeddings"]

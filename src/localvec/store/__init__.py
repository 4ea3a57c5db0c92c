from .local_index import LocalIndex, UpdateState

__all__ = ["LocalIndex", "UpdateState"]

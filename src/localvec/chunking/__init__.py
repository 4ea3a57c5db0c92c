from .separators import get_separators
from .text_splitter import TextSplitter, TextSplitterConfig, token_spans

__all__ = ["TextSplitter", "TextSplitterConfig", "get_separators", "token_spans"]

from .catalog import DocumentCatalog, infer_doc_type
from .local_document import LocalDocument
from .sections import DocumentResult, SectionBuilder

__all__ = ["DocumentCatalog", "DocumentResult", "LocalDocument", "SectionBuilder", "infer_doc_type"]

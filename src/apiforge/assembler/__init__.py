"""Request orchestration: statement building, virtual sort and pagination."""

from .assembler import AssembledResult, ResultAssembler, VirtualSortState
from .fingerprint import query_fingerprint
from .paginator import Page

__all__ = [
    "AssembledResult",
    "Page",
    "ResultAssembler",
    "VirtualSortState",
    "query_fingerprint",
]

"""
Schema management package for spanform.

This package provides:
- Table, column and interleave value objects
- Native type decoding and DDL synthesis
- Desired vs. observed schema diffing
- The column metadata store
- Table create/get/update/delete orchestration
"""

from .model import Column, DataType, Interleave, OnDeleteAction, ProtoDescriptor, Table
from .differ import TablePlan, compare, plan
from .metadata import ColumnMetadataStore, ColumnFacts
from .reconciler import TableReconciler

__all__ = [
    "Column",
    "DataType",
    "Interleave",
    "OnDeleteAction",
    "ProtoDescriptor",
    "Table",
    "TablePlan",
    "compare",
    "plan",
    "ColumnMetadataStore",
    "ColumnFacts",
    "TableReconciler",
]

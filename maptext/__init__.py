"""
maptext/__init__.py

Text engine for Wardley-style map source: parsing with name recovery,
coordinate formatting and line-preserving structural mutations.
"""

from maptext.errors import (
    ElementNotFoundError,
    InvalidCoordinatesError,
    InvalidNameError,
    MutationError,
    MutationResult,
    NameCollisionError,
    StaleLineError,
)
from maptext.mutations import (
    AddAttitude,
    AddComponent,
    AddLink,
    AddNote,
    AddPipeline,
    AddPipelineComponent,
    DeleteLine,
    DeleteLink,
    ElementRef,
    EvolveComponent,
    InsertElement,
    InsertPolicy,
    RenameAnchor,
    RenameElement,
    UpdateCoordinates,
    UpdateDecorator,
    UpdateLinkContext,
    UpdateTitle,
    apply_mutation,
)
from maptext.parser import parse
from maptext.rename import rename_anchor, rename_identifier_and_references

__all__ = [
    "parse",
    "apply_mutation",
    "rename_anchor",
    "rename_identifier_and_references",
    "ElementRef",
    "InsertPolicy",
    "AddAttitude",
    "AddComponent",
    "AddLink",
    "AddNote",
    "AddPipeline",
    "AddPipelineComponent",
    "DeleteLine",
    "DeleteLink",
    "EvolveComponent",
    "InsertElement",
    "RenameAnchor",
    "RenameElement",
    "UpdateCoordinates",
    "UpdateDecorator",
    "UpdateLinkContext",
    "UpdateTitle",
    "MutationError",
    "MutationResult",
    "InvalidCoordinatesError",
    "NameCollisionError",
    "ElementNotFoundError",
    "InvalidNameError",
    "StaleLineError",
]

"""Type registry and classification."""

from clonepy.analysis.type_registry import (
    TypeRegistry,
    default_registry,
    populate_defaults,
    register_ignored,
    register_safe,
)
from clonepy.analysis.type_classifier import (
    Category,
    CopyHook,
    FieldDescriptor,
    TypeClassifier,
    TypeDescriptor,
)

"""Hierarchical dependency resolution scopes.

This package provides a small dependency container for Python: a tree of scopes,
each mapping service types to pre-built singletons or factories, able to inject
marked fields and properties into objects that are already constructed.

Exports:
- `Scope`: Registry and resolver. Child scopes created with `make_child_scope()`
  resolve locally first, then fall back toward the root.
- `Dependency`: `Annotated` marker tagging an injectable field or property.
- `DependencyNotResolvedError`: Raised when a required dependency cannot be found.
- `Constructor`, `AnnotationIntrospector`, `IntrospectionProvider`,
  `MemberDescriptor`: Pluggable construction and member discovery.
"""

from ._errors import DependencyNotResolvedError
from ._introspection import AnnotationIntrospector, Dependency, IntrospectionProvider, MemberDescriptor
from ._scope import Constructor, Scope


__all__ = [
    "AnnotationIntrospector",
    "Constructor",
    "Dependency",
    "DependencyNotResolvedError",
    "IntrospectionProvider",
    "MemberDescriptor",
    "Scope",
]

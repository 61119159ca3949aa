from __future__ import annotations

import inspect
import logging
import sys
import types
from dataclasses import dataclass
from functools import partial
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    ClassVar,
    ForwardRef,
    Protocol,
    Union,
    get_args,
    get_origin,
    runtime_checkable,
)


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@dataclass(frozen=True)
class Dependency:
    """Marks a field or property as an injectable dependency.

    Attach it as ``Annotated`` metadata:

      class Service:
          logger: Annotated[Logger, Dependency()]
          cache: Annotated[Cache, Dependency(is_optional=True)]
    """

    is_optional: bool = False


@dataclass(frozen=True)
class MemberDescriptor:
    name: str
    service_type: Any
    marker: Dependency | None
    assign: Callable[[Any], None]
    is_property: bool = False


@runtime_checkable
class IntrospectionProvider(Protocol):
    def describe_members(self, target: object) -> list[MemberDescriptor]: ...


class AnnotationIntrospector:
    """Describes the injectable members declared directly on the target's class.

    - fields: class-level annotations, in declaration order (``ClassVar`` skipped)
    - properties: read/write ``property`` objects, marked through the getter's
      return annotation, in class body order.

    Members inherited from base classes are not reported. Annotations are
    evaluated one at a time: an unmarked member whose annotation cannot be
    evaluated is skipped with a warning, a marked one raises ``TypeError``.
    """

    def describe_members(self, target: object) -> list[MemberDescriptor]:
        cls = type(target)
        members = list(self._describe_fields(target, cls))
        members.extend(self._describe_properties(target, cls))
        return members

    def _describe_fields(self, target: object, cls: type) -> Iterator[MemberDescriptor]:
        module = sys.modules.get(cls.__module__)
        globalns = getattr(module, "__dict__", {})
        localns = dict(vars(cls))

        for name, annotation in _raw_annotations(cls).items():
            if isinstance(cls.__dict__.get(name), property):
                continue

            described = _describe_annotation(f"{cls.__qualname__}.{name}", annotation, globalns, localns)
            if described is None:
                continue

            service_type, marker = described
            yield MemberDescriptor(
                name=name,
                service_type=service_type,
                marker=marker,
                assign=partial(setattr, target, name),
            )

    def _describe_properties(self, target: object, cls: type) -> Iterator[MemberDescriptor]:
        for name, attr in cls.__dict__.items():
            # write-only and read-only properties cannot be injected
            if not isinstance(attr, property) or attr.fget is None or attr.fset is None:
                continue

            annotation = _raw_annotations(attr.fget).get("return", inspect.Signature.empty)
            described = None
            if annotation is not inspect.Signature.empty:
                globalns = getattr(attr.fget, "__globals__", {})
                described = _describe_annotation(f"{cls.__qualname__}.{name}", annotation, globalns, None)
            service_type, marker = described if described is not None else (None, None)

            yield MemberDescriptor(
                name=name,
                service_type=service_type,
                marker=marker,
                assign=partial(attr.fset, target),
                is_property=True,
            )


def _raw_annotations(obj: Any) -> dict[str, Any]:
    try:
        return dict(inspect.get_annotations(obj))
    except NameError:
        # lazily evaluated annotations (3.14+) referring to names that do not exist
        import annotationlib

        return annotationlib.get_annotations(obj, format=annotationlib.Format.FORWARDREF)


def _describe_annotation(
    qualname: str,
    annotation: Any,
    globalns: dict[str, Any],
    localns: dict[str, Any] | None,
) -> tuple[Any, Dependency | None] | None:
    """Return ``(service_type, marker)``, or None when the member is to be skipped."""
    try:
        annotation = _evaluate(annotation, globalns, localns)
    except Exception as exc:  # noqa: BLE001
        if _mentions_marker(annotation):
            msg = f"Cannot evaluate the annotation of dependency {qualname}: {exc}"
            raise TypeError(msg) from exc
        logger.warning("Unable to evaluate the annotation of %s (%s); member skipped", qualname, exc)
        return None

    if _is_class_var(annotation):
        return None

    service_type, marker = _split_marker(annotation)
    if marker is not None and isinstance(service_type, (str, ForwardRef)):
        # forward references nested inside Annotated[...] or Optional[...]
        try:
            service_type = _evaluate(service_type, globalns, localns)
        except Exception as exc:  # noqa: BLE001
            msg = f"Cannot evaluate the annotation of dependency {qualname}: {exc}"
            raise TypeError(msg) from exc

    return service_type, marker


def _evaluate(annotation: Any, globalns: dict[str, Any], localns: dict[str, Any] | None) -> Any:
    if isinstance(annotation, ForwardRef):
        annotation = annotation.__forward_arg__
    if isinstance(annotation, str):
        return eval(annotation, globalns, localns)  # noqa: S307
    return annotation


def _mentions_marker(annotation: Any) -> bool:
    if isinstance(annotation, ForwardRef):
        annotation = annotation.__forward_arg__
    return isinstance(annotation, str) and Dependency.__name__ in annotation


def _split_marker(annotation: Any) -> tuple[Any, Dependency | None]:
    if get_origin(annotation) is not Annotated:
        return annotation, None

    # Annotated[T, *metadata]: args[0] is T
    service_type, *metadata = get_args(annotation)
    marker = None
    for meta in metadata:
        if meta is Dependency:
            marker = Dependency()
            break
        if isinstance(meta, Dependency):
            marker = meta
            break

    return _strip_optional(service_type), marker


def _strip_optional(tp: Any) -> Any:
    """Map ``X | None`` and ``Optional[X]`` to ``X``."""
    if get_origin(tp) not in (Union, types.UnionType):
        return tp

    args = [arg for arg in get_args(tp) if arg is not type(None)]
    if len(args) == 1:
        return args[0]
    return tp


def _is_class_var(annotation: Any) -> bool:
    return annotation is ClassVar or get_origin(annotation) is ClassVar

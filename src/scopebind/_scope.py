from __future__ import annotations

import inspect
import logging
import threading
import typing
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    TypeVar,
    cast,
    overload,
)

from ._errors import DependencyNotResolvedError
from ._introspection import AnnotationIntrospector


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable

    from ._introspection import IntrospectionProvider, MemberDescriptor

    T = TypeVar("T")

    Token = type[T] | str
    # Producers receive the scope on which resolution was invoked
    Producer = Callable[["Scope"], object]

_MISSING = object()


class Scope:
    """Registry and resolver for one node of a dependency tree.

    - register pre-built singletons, factories or factory-of-singletons
    - resolve: nearest scope wins, instances before factories, then the parent
    - inject marked fields/properties into an existing object
    - child scopes created with `make_child_scope()`.

    By convention a single root scope lives at the application root and is passed
    down through constructors; objects needing further dependencies take the scope
    as their only constructor argument.
    """

    def __init__(
        self,
        *,
        introspector: IntrospectionProvider | None = None,
        constructor: Constructor | None = None,
    ) -> None:
        self._instances: dict[Any, object] = {}
        self._factories: dict[Any, Producer] = {}
        self._lock = threading.RLock()
        self._parent: Scope | None = None
        self._introspector = introspector if introspector is not None else AnnotationIntrospector()
        self._constructor = constructor if constructor is not None else Constructor()

    @property
    def parent(self) -> Scope | None:
        return self._parent

    @property
    def is_root(self) -> bool:
        return self._parent is None

    def make_child_scope(self) -> Scope:
        """Create an empty scope that falls back to this one on lookup."""
        child = Scope(introspector=self._introspector, constructor=self._constructor)
        child._parent = self
        logger.debug("Created child scope %#x of %#x", id(child), id(self))
        return child

    def register_singleton(self, token: Token[T], instance: object) -> None:
        """Bind a pre-built instance to `token` in this scope."""
        with self._lock:
            self._instances[token] = instance
        logger.debug("Registered singleton for %s", _token_repr(token))

    @overload
    def register_factory(self, token: type[T], impl: type[T], *, factory: None = ...) -> None: ...

    @overload
    def register_factory(self, token: type[T], impl: None = ..., *, factory: Callable[[], T]) -> None: ...

    @overload
    def register_factory(
        self,
        token: str,
        impl: type | None = ...,
        *,
        factory: Callable[[], Any] | None = ...,
    ) -> None: ...

    def register_factory(
        self,
        token: Token[T],
        impl: type | None = None,
        *,
        factory: Callable[[], Any] | None = None,
    ) -> None:
        """Register a producer invoked on every resolution of `token`.

        A type-driven `impl` that takes the scope is given the scope on which
        resolution was invoked, not the scope it was registered in.

        Example:
          scope.register_factory(IFoo, FooImpl)
          scope.register_factory("db", factory=create_db)

        """
        producer = self._make_producer(token, impl, factory)
        with self._lock:
            self._factories[token] = producer
        logger.debug("Registered factory for %s", _token_repr(token))

    @overload
    def register_factory_of_singleton(self, token: type[T], impl: type[T], *, factory: None = ...) -> None: ...

    @overload
    def register_factory_of_singleton(
        self, token: type[T], impl: None = ..., *, factory: Callable[[], T]
    ) -> None: ...

    @overload
    def register_factory_of_singleton(
        self,
        token: str,
        impl: type | None = ...,
        *,
        factory: Callable[[], Any] | None = ...,
    ) -> None: ...

    def register_factory_of_singleton(
        self,
        token: Token[T],
        impl: type | None = None,
        *,
        factory: Callable[[], Any] | None = None,
    ) -> None:
        """Register a producer whose first result becomes a singleton.

        The instance is stored in the scope on which resolution was invoked, which
        is not necessarily this scope when resolving from a descendant.

        Two threads resolving the key for the first time may both run the producer;
        the last write wins and each caller still receives a fully built instance.
        """
        build = self._make_producer(token, impl, factory)

        def produce_once(scope: Scope) -> object:
            instance = build(scope)
            with scope._lock:
                scope._instances[token] = instance
            logger.debug("Promoted %s to singleton in scope %#x", _token_repr(token), id(scope))
            return instance

        with self._lock:
            self._factories[token] = produce_once
        logger.debug("Registered factory of singleton for %s", _token_repr(token))

    def _make_producer(
        self,
        token: Token[T],
        impl: type | None,
        factory: Callable[[], Any] | None,
    ) -> Producer:
        if impl is not None and factory is not None:
            msg = "Provide either `impl` or `factory`, not both."
            raise ValueError(msg)

        if impl is None and factory is None:
            msg = "Either `impl` or `factory` must be provided."
            raise ValueError(msg)

        if factory is not None:
            if not callable(factory):
                msg = f"Factory for {_token_repr(token)} must be callable, got {factory!r}"
                raise TypeError(msg)
            return lambda _scope: factory()

        cls = cast("type", impl)
        if not inspect.isclass(cls):
            msg = f"Implementation for {_token_repr(token)} must be a class, got {cls!r}"
            raise TypeError(msg)

        # Non-type tokens (like strings): cannot validate statically.
        if inspect.isclass(token):
            _validate_impl(token, cls)

        constructor = self._constructor
        return lambda scope: constructor.construct(cls, scope)

    @overload
    def resolve(self, token: type[T]) -> T | None: ...

    @overload
    def resolve(self, token: str) -> object | None: ...

    def resolve(self, token: Token[T]) -> object | None:
        """Resolve `token`, returning None when nothing in the chain provides it.

        Each scope is searched instance first, then factory, before moving on to
        its parent.
        """
        scope: Scope | None = self
        while scope is not None:
            with scope._lock:
                instance = scope._instances.get(token, _MISSING)
                producer = scope._factories.get(token)

            if instance is not _MISSING:
                return instance
            if producer is not None:
                return producer(self)

            scope = scope._parent

        return None

    def is_registered(self, token: Token[T], *, local: bool = False) -> bool:
        """Tell whether `token` has an entry here or, unless `local`, in any ancestor."""
        scope: Scope | None = self
        while scope is not None:
            with scope._lock:
                if token in scope._instances or token in scope._factories:
                    return True
            if local:
                break
            scope = scope._parent

        return False

    def resolve_dependencies(self, obj: object) -> None:
        """Inject every marked field and read/write property declared on `obj`'s class.

        Fields are processed before properties. A required dependency missing from
        the whole chain raises `DependencyNotResolvedError`; members handled before
        it keep their injected values.

        By convention, call it from the object's own ``__init__`` passing ``self``.
        """
        for member in self._introspector.describe_members(obj):
            self._resolve_member_dependency(obj, member)

    def _resolve_member_dependency(self, obj: object, member: MemberDescriptor) -> None:
        if member.marker is None:
            return

        service = self.resolve(member.service_type)

        if service is not None:
            member.assign(service)
            logger.debug(
                "Injected %s into %s.%s",
                _token_repr(member.service_type),
                type(obj).__name__,
                member.name,
            )
        elif not member.marker.is_optional:
            raise DependencyNotResolvedError(member.service_type)


class Constructor:
    """Builds instances for type-driven factories.

    A class whose constructor declares no named parameter is called without
    arguments, anything else is called with the resolving scope as its sole
    argument, even when that parameter has a default.
    """

    def construct(self, cls: type[T], scope: Scope) -> T:
        if self._accepts_no_arguments(cls):
            return cls()
        return cls(scope)  # type: ignore[call-arg]

    @staticmethod
    def _accepts_no_arguments(cls: type) -> bool:
        try:
            sig = inspect.signature(cls)
        except (TypeError, ValueError):
            # no introspectable signature (some builtins / extension types)
            return True

        # any named parameter, defaulted or not, receives the scope
        return all(p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD) for p in sig.parameters.values())


def _validate_impl(cls: type, impl: type) -> None:
    """Validate that 'impl' implements 'cls'.

    - For normal classes/ABCs: require issubclass(impl, cls).
    - For Protocols: nominal via MRO, otherwise every public protocol member must
      be present on impl.
    """
    if not _is_protocol(cls):
        if not issubclass(impl, cls):
            msg = f"Implementation {impl.__name__} must be a subclass of {cls.__name__}"
            raise TypeError(msg)
        return

    if cls in getattr(impl, "__mro__", ()):
        return

    missing = [name for name in _protocol_members(cls) if not hasattr(impl, name)]
    if missing:
        msg = (
            f"Implementation {impl.__name__} does not structurally conform to protocol "
            f"{cls.__name__}: missing members: {', '.join(missing)}"
        )
        raise TypeError(msg)


def _protocol_members(proto_cls: type) -> list[str]:
    names = [name for name in inspect.get_annotations(proto_cls) if not name.startswith("_")]
    for name, attr in proto_cls.__dict__.items():
        if name.startswith("_") or name in names:
            continue
        if inspect.isfunction(attr) or isinstance(attr, (property, classmethod, staticmethod)):
            names.append(name)
    return names


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: type) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: type) -> bool:
        """Detect whether 'tp' is a typing.Protocol subclass (safe)."""
        return inspect.isclass(tp) and getattr(tp, "_is_protocol", False) and issubclass(tp, cast("type", Protocol))


def _token_repr(token: object) -> str:
    return getattr(token, "__name__", repr(token))

from typing import Protocol, runtime_checkable

from scopebind import Scope


def test_resolve_unregistered_type_returns_none():
    s = Scope()

    class Service: ...

    assert s.resolve(Service) is None


def test_resolve_unregistered_string_token_returns_none():
    s = Scope()
    assert s.resolve("unknown-token") is None


def test_resolve_register_singleton_returns_instance():
    s = Scope()

    class Service: ...

    instance = Service()
    s.register_singleton(Service, instance)

    assert s.resolve(Service) is instance


def test_resolve_register_singleton_by_string_token():
    s = Scope()
    s.register_singleton("port", 8080)

    assert s.resolve("port") == 8080


def test_resolve_register_factory_calls_factory():
    s = Scope()

    class Base: ...

    class Derived(Base): ...

    s.register_factory(Base, factory=Derived)

    assert isinstance(s.resolve(Base), Derived)


def test_resolve_register_factory_impl_derived_with_token_base_class():
    s = Scope()

    class Base: ...

    class Derived(Base): ...

    s.register_factory(Base, Derived)

    assert isinstance(s.resolve(Base), Derived)


def test_resolve_register_factory_of_singleton_impl_derived_with_token_base_class():
    s = Scope()

    class Base: ...

    class Derived(Base): ...

    s.register_factory_of_singleton(Base, Derived)

    assert isinstance(s.resolve(Base), Derived)


def test_resolve_register_factory_runtime_protocol_token():
    s = Scope()

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self) -> int: ...

    class RepoImpl:
        def get(self) -> int:
            return 1

    s.register_factory(RepoProtocol, RepoImpl)
    repo = s.resolve(RepoProtocol)

    assert isinstance(repo, RepoImpl)
    assert repo.get() == 1


def test_register_singleton_twice_last_write_wins():
    s = Scope()

    class A: ...

    a1, a2 = A(), A()
    s.register_singleton(A, a1)
    s.register_singleton(A, a2)

    assert s.resolve(A) is a2


def test_register_factory_twice_last_write_wins():
    s = Scope()

    class A: ...

    class B(A): ...

    s.register_factory(A, factory=A)
    s.register_factory(A, B)

    assert type(s.resolve(A)) is B


def test_registered_none_singleton_resolves_as_absent():
    s = Scope()

    class A: ...

    s.register_singleton(A, None)

    assert s.resolve(A) is None
    assert s.is_registered(A)


def test_is_registered_walks_chain_unless_local():
    root = Scope()
    child = root.make_child_scope()

    class A: ...

    root.register_factory(A, A)

    assert child.is_registered(A)
    assert not child.is_registered(A, local=True)
    assert root.is_registered(A, local=True)
    assert not child.is_registered("other")


def test_make_child_scope_links_parent():
    root = Scope()
    child = root.make_child_scope()
    grandchild = child.make_child_scope()

    assert root.is_root
    assert root.parent is None
    assert not child.is_root
    assert child.parent is root
    assert grandchild.parent is child


def test_make_child_scope_copies_no_registrations():
    root = Scope()

    class A: ...

    root.register_singleton(A, A())
    child = root.make_child_scope()

    assert not child.is_registered(A, local=True)


def test_child_registration_does_not_touch_parent():
    root = Scope()
    child = root.make_child_scope()

    class A: ...

    child.register_singleton(A, A())
    child.register_factory("a", factory=A)

    assert root.resolve(A) is None
    assert root.resolve("a") is None

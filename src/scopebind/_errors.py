from __future__ import annotations


class DependencyNotResolvedError(RuntimeError):
    """A required dependency could not be found anywhere in the scope chain."""

    def __init__(self, service_type: object) -> None:
        self.service_type = service_type
        msg = (
            f"Dependency of type '{_type_name(service_type)}' could not be resolved "
            "and is not an optional dependency."
        )
        super().__init__(msg)


def _type_name(tp: object) -> str:
    if isinstance(tp, str):
        return tp

    qualname = getattr(tp, "__qualname__", None)
    if qualname is None:
        return repr(tp)

    module = getattr(tp, "__module__", None)
    if module in (None, "builtins"):
        return qualname
    return f"{module}.{qualname}"

"""Decode JSON bytes into a target shape with pydantic.

The target shape is anything pydantic can validate: a ``BaseModel``
subclass, a dataclass, a ``TypedDict``, or a typing form such as
``list[Person]`` or ``dict[str, Any]``.

Whether unknown fields are tolerated is a per-call setting, while pydantic
reads it from the config of each model. Before validating, the shape is
rewritten so that everything reachable from it carries ``extra="ignore"`` or
``extra="forbid"``:

* models become subclasses of themselves with the new config, so
  ``isinstance`` checks against the original models still hold;
* dataclasses are validated as a ``TypedDict`` of their init fields and then
  constructed, so the result is an instance of the original class;
* ``TypedDict`` shapes are copied with the new config.

Rewritten shapes are built under a lock and kept in a bounded cache of
validators; nothing else holds on to them.
"""

from __future__ import annotations

import collections
import dataclasses
import functools
import inspect
import threading
import types
import typing as t
from copy import copy

import typing_extensions
from pydantic import AfterValidator, BaseModel, ConfigDict, TypeAdapter

from .types import Allocate, ParseOptions

if t.TYPE_CHECKING:
    from pydantic.fields import FieldInfo

T = t.TypeVar("T")

ADAPTER_CACHE_SIZE = 256

_adapters: collections.OrderedDict[tuple[t.Any, bool], TypeAdapter[t.Any]] = collections.OrderedDict()
_adapters_lock = threading.RLock()


def _construct(cls: type[T], values: dict[str, t.Any]) -> T:
    return cls(**values)


def _copy_field(info: FieldInfo) -> FieldInfo:
    # pydantic extends the metadata list of a FieldInfo it is handed in place
    duplicate = copy(info)
    duplicate.metadata = list(info.metadata)
    return duplicate


def _strip_required(hint: t.Any) -> t.Any:
    if t.get_origin(hint) in (t.Required, t.NotRequired):
        return t.get_args(hint)[0]
    return hint


class _ShapeRewriter:
    """Rewrites one shape so that every model in it uses the same ``extra``.

    An instance is used for a single shape. Models met again while they are
    still being rewritten are referenced by a placeholder name and resolved
    with ``model_rebuild`` once everything is built.
    """

    def __init__(self, extra: str) -> None:
        self.config = ConfigDict(extra=extra)  # type: ignore[typeddict-item]
        self._done: dict[t.Any, t.Any] = {}
        self._pending: dict[t.Any, str] = {}
        self._placeholders: dict[str, type[BaseModel]] = {}
        self._models: list[type[BaseModel]] = []

    def rewrite(self, shape: t.Any) -> t.Any:
        rewritten = self._rewrite(shape)
        for model in self._models:
            if not model.__pydantic_complete__:
                model.model_rebuild(force=True, _types_namespace=self._placeholders)
        return rewritten

    def _rewrite(self, shape: t.Any) -> t.Any:
        if isinstance(shape, type):
            if issubclass(shape, BaseModel):
                return self._model(shape)
            if dataclasses.is_dataclass(shape):
                return self._dataclass(shape)
            if typing_extensions.is_typeddict(shape):
                return self._typed_dict(shape)

        origin = t.get_origin(shape)
        if origin is None or origin is t.Literal:
            return shape

        args = t.get_args(shape)
        if origin is t.Annotated:
            inner = self._rewrite(args[0])
            if inner is args[0]:
                return shape
            return t.Annotated[(inner, *shape.__metadata__)]

        rewritten = tuple(self._rewrite(arg) for arg in args)
        if all(new is old for new, old in zip(rewritten, args, strict=True)):
            return shape
        if origin in (t.Union, types.UnionType):
            return t.Union[rewritten]  # noqa: UP007
        return origin[rewritten]

    def _model(self, model: type[BaseModel]) -> t.Any:
        if model in self._done:
            return self._done[model]
        if model in self._pending:
            return t.ForwardRef(self._pending[model])

        placeholder = f"_{model.__name__}_{id(model):x}"
        self._pending[model] = placeholder

        annotations: dict[str, t.Any] = {}
        namespace: dict[str, t.Any] = {
            "__module__": model.__module__,
            "__qualname__": model.__qualname__,
            "model_config": self.config,
        }
        for name, info in model.model_fields.items():
            rewritten = self._rewrite(info.annotation)
            if rewritten is not info.annotation:
                annotations[name] = rewritten
                namespace[name] = _copy_field(info)
        namespace["__annotations__"] = annotations
        derived = type(model)(model.__name__, (model,), namespace)

        del self._pending[model]
        self._done[model] = derived
        self._placeholders[placeholder] = derived
        self._models.append(derived)
        return derived

    def _enter(self, shape: type) -> None:
        if shape in self._pending:
            msg = f"Cannot apply field settings to self-referencing type {shape.__qualname__}"
            raise TypeError(msg)
        self._pending[shape] = shape.__qualname__

    def _dataclass(self, cls: type) -> t.Any:
        if cls in self._done:
            return self._done[cls]
        self._enter(cls)

        init_fields = [field for field in dataclasses.fields(cls) if field.init]
        if set(inspect.signature(cls).parameters) != {field.name for field in init_fields}:
            msg = f"Cannot apply field settings to dataclass {cls.__qualname__} with InitVar fields"
            raise TypeError(msg)

        hints = t.get_type_hints(cls, include_extras=True)

        fields: dict[str, t.Any] = {}
        for field in init_fields:
            hint = self._rewrite(hints[field.name])
            has_default = (
                field.default is not dataclasses.MISSING
                or field.default_factory is not dataclasses.MISSING
            )
            fields[field.name] = t.NotRequired[hint] if has_default else hint

        typed = typing_extensions.TypedDict(cls.__name__, fields)  # type: ignore[operator]
        typed.__pydantic_config__ = self.config  # type: ignore[attr-defined]
        derived = t.Annotated[typed, AfterValidator(functools.partial(_construct, cls))]

        del self._pending[cls]
        self._done[cls] = derived
        return derived

    def _typed_dict(self, typed_dict: type) -> t.Any:
        if typed_dict in self._done:
            return self._done[typed_dict]
        self._enter(typed_dict)

        hints = t.get_type_hints(typed_dict, include_extras=True)
        optional = typed_dict.__optional_keys__  # type: ignore[attr-defined]
        fields: dict[str, t.Any] = {}
        for name, hint in hints.items():
            rewritten = self._rewrite(_strip_required(hint))
            fields[name] = t.NotRequired[rewritten] if name in optional else t.Required[rewritten]

        derived = typing_extensions.TypedDict(typed_dict.__name__, fields)  # type: ignore[operator]
        derived.__pydantic_config__ = self.config  # type: ignore[attr-defined]

        del self._pending[typed_dict]
        self._done[typed_dict] = derived
        return derived


def _adapter(shape: t.Any, ignore_unknown_fields: bool) -> TypeAdapter[t.Any]:  # noqa: FBT001
    """Return the cached validator for ``shape`` under the given leniency.

    Raises:
        TypeError: If the field settings cannot be applied to ``shape``.

    """
    key = (shape, ignore_unknown_fields)
    with _adapters_lock:
        adapter = _adapters.get(key)
        if adapter is not None:
            _adapters.move_to_end(key)
            return adapter

        extra = "ignore" if ignore_unknown_fields else "forbid"
        adapter = TypeAdapter(_ShapeRewriter(extra).rewrite(shape))
        _adapters[key] = adapter
        if len(_adapters) > ADAPTER_CACHE_SIZE:
            _adapters.popitem(last=False)
        return adapter


class Parsed(t.Generic[T]):
    """Owning handle for a decoded value.

    The value stays reachable until :meth:`release` is called, which must
    happen exactly once. Used as a context manager, the handle yields the
    value and releases it on exit.
    """

    __slots__ = ("_released", "_value")

    def __init__(self, value: T) -> None:
        self._value: T | None = value
        self._released = False

    @property
    def value(self) -> T:
        """The decoded value.

        Raises:
            RuntimeError: If the handle has already been released.

        """
        if self._released:
            msg = "Parsed value has already been released"
            raise RuntimeError(msg)
        return t.cast("T", self._value)

    @property
    def released(self) -> bool:
        """Whether :meth:`release` has been called."""
        return self._released

    def release(self) -> None:
        """Drop the decoded value.

        Raises:
            RuntimeError: If the handle has already been released.

        """
        if self._released:
            msg = "Parsed value has already been released"
            raise RuntimeError(msg)
        self._value = None
        self._released = True

    def __enter__(self) -> T:
        return self.value

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        if self._released:
            return "Parsed(<released>)"
        return f"Parsed({self._value!r})"


def decode(
    shape: type[T],
    data: bytes | bytearray,
    options: ParseOptions | None = None,
) -> Parsed[T]:
    """Decode JSON ``data`` into ``shape``.

    Args:
        shape: The type the JSON document must validate against.
        data: Raw JSON bytes.
        options: Leniency and allocation settings.

    Returns:
        Parsed: Owning handle for the decoded value.

    Raises:
        pydantic.ValidationError: If ``data`` is not valid JSON or does not
            fit ``shape``.
        TypeError: If unknown-field handling cannot be applied to ``shape``,
            such as a self-referencing dataclass.

    """
    options = options or ParseOptions()
    if options.allocate is Allocate.ALWAYS:
        data = bytes(data)
    adapter = _adapter(shape, options.ignore_unknown_fields)
    return Parsed(adapter.validate_json(data))

"""
Configuration value resolution for Warden.

Every secret, TTL and algorithm choice is stored as a descriptor and
resolved at the point of use, so rotated secrets and remotely fetched
keys are picked up without restarting the process.

Author: Warden Team
Date: 2026-10-16
"""

import importlib
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple, Union

from warden.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

FunctionTarget = Union[str, Callable[..., Any]]


@dataclass(frozen=True)
class Literal:
    """A value returned as-is, even when it is callable."""

    value: Any


@dataclass(frozen=True)
class EnvRef:
    """Reference to a process environment variable."""

    name: str


@dataclass(frozen=True)
class FunctionRef:
    """Reference to a zero-argument function ("module:function" or a callable)."""

    target: FunctionTarget


@dataclass(frozen=True)
class BoundFunctionRef:
    """Reference to a function invoked with a bound argument list."""

    target: FunctionTarget
    args: Tuple[Any, ...] = field(default_factory=tuple)


Descriptor = Union[Literal, EnvRef, FunctionRef, BoundFunctionRef, Any]


def import_function(path: str) -> Callable[..., Any]:
    """
    Import a function from a dotted path.

    Accepts both ``package.module:function`` and ``package.module.function``.

    Args:
        path: Import path

    Returns:
        The imported callable

    Raises:
        ConfigurationError: If the module or attribute cannot be found
    """
    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")

    if not module_name or not attr:
        raise ConfigurationError(f"Invalid function reference: {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import module {module_name!r}: {e}") from e

    func = getattr(module, attr, None)
    if func is None or not callable(func):
        raise ConfigurationError(f"{path!r} is not a callable")
    return func


def _call(target: FunctionTarget, args: Tuple[Any, ...] = ()) -> Any:
    func = import_function(target) if isinstance(target, str) else target
    return func(*args)


def resolve(descriptor: Descriptor) -> Any:
    """
    Resolve a configuration descriptor to its concrete value.

    Resolution is not recursive: a function returning another descriptor
    yields that descriptor unchanged.

    Args:
        descriptor: Literal value or one of the descriptor variants

    Returns:
        The resolved value (``None`` for an unset environment variable)
    """
    if isinstance(descriptor, Literal):
        return descriptor.value
    if isinstance(descriptor, EnvRef):
        value = os.environ.get(descriptor.name)
        if value is None:
            logger.debug(f"Environment variable {descriptor.name} is not set")
        return value
    if isinstance(descriptor, FunctionRef):
        return _call(descriptor.target)
    if isinstance(descriptor, BoundFunctionRef):
        return _call(descriptor.target, tuple(descriptor.args))
    if callable(descriptor) and not isinstance(descriptor, type):
        return descriptor()
    return descriptor


def parse_descriptor(value: Any) -> Descriptor:
    """
    Convert the file form of a descriptor into a descriptor variant.

    Recognised mappings (any other value is returned untouched)::

        {"env": "APP_SECRET"}
        {"function": "myapp.keys:load"}
        {"function": "myapp.keys:load", "args": ["kid-1"]}

    Args:
        value: Raw value loaded from YAML/JSON

    Returns:
        Descriptor variant or the original value
    """
    if not isinstance(value, dict):
        return value

    keys = set(value.keys())
    if keys == {"env"}:
        return EnvRef(str(value["env"]))
    if keys == {"function"}:
        return FunctionRef(value["function"])
    if keys == {"function", "args"}:
        args = value["args"]
        if not isinstance(args, (list, tuple)):
            raise ConfigurationError("Function descriptor 'args' must be a list")
        return BoundFunctionRef(value["function"], tuple(args))
    return value


def describe(descriptor: Descriptor) -> Dict[str, Any]:
    """Describe a descriptor for logs without exposing literal secret material."""
    if isinstance(descriptor, EnvRef):
        return {"kind": "env", "name": descriptor.name}
    if isinstance(descriptor, FunctionRef):
        return {"kind": "function", "target": _target_name(descriptor.target)}
    if isinstance(descriptor, BoundFunctionRef):
        return {
            "kind": "function",
            "target": _target_name(descriptor.target),
            "args": len(descriptor.args),
        }
    if isinstance(descriptor, (list, tuple)):
        return {"kind": "list", "items": [describe(item) for item in descriptor]}
    return {"kind": "literal"}


def _target_name(target: FunctionTarget) -> str:
    if isinstance(target, str):
        return target
    return getattr(target, "__qualname__", repr(target))

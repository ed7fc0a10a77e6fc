"""
Serializes request bodies to wire payloads and response payloads to typed values.

A body is one of a closed set of variants:
- raw bytes, which pass through untouched;
- text, which is encoded as UTF-8;
- a string-keyed mapping of scalars (text, numbers, booleans or `None`),
  which is written as a JSON object;
- a dataclass instance (a typed record), which is written as a JSON object of
  its fields.

Decoding goes the other way and is strict: a payload that does not have the
requested shape is a failure, never a silently defaulted value.
"""

from collections import abc
import dataclasses
from enum import Enum
import json
import types
import typing
from typing import Any, Mapping, Optional, Type, TypeVar

from .errors import ClassifiedError, DecodeError, EncodeError, ErrorKind


T = TypeVar('T')

JSON_CONTENT_TYPE = 'application/json'
TEXT_CONTENT_TYPE = 'text/plain; charset=utf-8'
BINARY_CONTENT_TYPE = 'application/octet-stream'

_BINARY_TYPES = (bytes, bytearray, memoryview)
_SCALAR_TYPES = (str, int, float, bool, type(None))

_UNION_ORIGINS = {typing.Union, getattr(types, 'UnionType', typing.Union)}


class RecordJSONEncoder(json.JSONEncoder):
    def default(self, o):
        if dataclasses.is_dataclass(o) and not isinstance(o, type):
            return {f.name: getattr(o, f.name) for f in dataclasses.fields(o)}
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, (set, frozenset)):
            try:
                return sorted(o)
            except TypeError:
                return list(o)
        if isinstance(o, Mapping):
            return dict(o)
        return super().default(o)


def _is_record(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def content_type(value: Any) -> Optional[str]:
    """
    The `Content-Type` that naturally accompanies an encoded `value`.
    """
    if value is None:
        return None
    if isinstance(value, _BINARY_TYPES):
        return BINARY_CONTENT_TYPE
    if isinstance(value, str):
        return TEXT_CONTENT_TYPE
    return JSON_CONTENT_TYPE


def encode(value: Any) -> bytes:
    """
    Serialize a body into its wire payload.

    @param value
      Raw bytes, text, a string-keyed mapping or a dataclass instance.
    @return
      The payload.
    @throws ClassifiedError
      With kind `ENCODING_FAILURE` if `value` is not a supported body or holds
      something that cannot be serialized.
    """
    try:
        return _encode(value)
    except EncodeError as e:
        raise ClassifiedError(ErrorKind.ENCODING_FAILURE, e) from e


def _encode(value: Any) -> bytes:
    if isinstance(value, _BINARY_TYPES):
        return bytes(value)

    if isinstance(value, str):
        try:
            return value.encode('utf-8')
        except UnicodeEncodeError as e:
            raise EncodeError('Text body is not valid UTF-8: {}'.format(e)) from e

    if _is_record(value):
        document = value
    elif isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodeError('Mapping keys must be strings, got {!r}'.format(key))
            if not isinstance(item, _SCALAR_TYPES):
                raise EncodeError('Mapping values must be scalars, got {} for {!r}'.format(type(item).__name__, key))
        document = dict(value)
    else:
        raise EncodeError('Unsupported body type: {}'.format(type(value).__name__))

    try:
        return json.dumps(document, cls=RecordJSONEncoder, allow_nan=False).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise EncodeError('Body could not be serialized: {}'.format(e)) from e


def decode(payload: bytes, shape: Type[T]) -> T:
    """
    Deserialize a payload into the requested shape.

    @param payload
      The raw bytes of a response body.
    @param shape
      `bytes` for the payload itself, `str` for UTF-8 text, or any type the JSON
      decoder understands: `dict`, `list`, typing generics, dataclasses.
    @return
      An instance of `shape`.
    @throws ClassifiedError
      With kind `DECODING_FAILURE` if the payload does not have that shape.
    """
    try:
        if shape is bytes:
            return bytes(payload)
        try:
            text = bytes(payload).decode('utf-8')
        except UnicodeDecodeError as e:
            raise DecodeError('Payload is not valid UTF-8: {}'.format(e)) from e
        if shape is str:
            return text
        try:
            document = json.loads(text)
        except ValueError as e:
            raise DecodeError('Payload is not valid JSON: {}'.format(e)) from e
        return _convert(document, shape, '$')
    except DecodeError as e:
        raise ClassifiedError(ErrorKind.DECODING_FAILURE, e) from e


def decode_value(document: Any, shape: Type[T]) -> T:
    """
    Convert already-parsed JSON data into the requested shape.

    Same rules, and same failure, as `decode()`.
    """
    try:
        return _convert(document, shape, '$')
    except DecodeError as e:
        raise ClassifiedError(ErrorKind.DECODING_FAILURE, e) from e


def _mismatch(path: str, expected: str, document: Any) -> DecodeError:
    return DecodeError('{}: expected {}, got {}'.format(path, expected, type(document).__name__))


def _convert(document: Any, shape: Any, path: str) -> Any:
    if shape is Any:
        return document

    origin = typing.get_origin(shape)
    args = typing.get_args(shape)

    if origin in _UNION_ORIGINS:
        if document is None and type(None) in args:
            return None
        for option in args:
            if option is type(None):
                continue
            try:
                return _convert(document, option, path)
            except DecodeError:
                continue
        raise _mismatch(path, str(shape), document)

    if origin is not None:
        return _convert_generic(document, origin, args, path)

    if dataclasses.is_dataclass(shape) and isinstance(shape, type):
        return _convert_record(document, shape, path)

    if shape is type(None):
        if document is not None:
            raise _mismatch(path, 'null', document)
        return None

    if isinstance(shape, type) and issubclass(shape, Enum):
        try:
            return shape(document)
        except ValueError as e:
            raise DecodeError('{}: {}'.format(path, e)) from e

    if shape is bool:
        if not isinstance(document, bool):
            raise _mismatch(path, 'bool', document)
        return document

    if shape is int:
        if isinstance(document, bool) or not isinstance(document, int):
            raise _mismatch(path, 'int', document)
        return document

    if shape is float:
        if isinstance(document, bool) or not isinstance(document, (int, float)):
            raise _mismatch(path, 'float', document)
        return float(document)

    if shape in (dict, list, tuple, set, frozenset):
        return _convert_generic(document, shape, (), path)

    if isinstance(shape, type):
        if not isinstance(document, shape):
            raise _mismatch(path, shape.__name__, document)
        return document

    raise DecodeError('{}: unsupported shape {!r}'.format(path, shape))


def _convert_generic(document: Any, origin: Any, args: tuple, path: str) -> Any:
    if _is_subclass(origin, abc.Mapping):
        if not isinstance(document, dict):
            raise _mismatch(path, 'object', document)
        value_shape = args[1] if len(args) == 2 else Any
        return {key: _convert(value, value_shape, '{}.{}'.format(path, key))
                for key, value in document.items()}

    if not isinstance(document, list):
        raise _mismatch(path, 'array', document)

    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            shapes = [args[0]] * len(document)
        elif args:
            if len(args) != len(document):
                raise DecodeError('{}: expected {} items, got {}'.format(path, len(args), len(document)))
            shapes = list(args)
        else:
            shapes = [Any] * len(document)
        return tuple(_convert(item, item_shape, '{}[{}]'.format(path, index))
                     for index, (item, item_shape) in enumerate(zip(document, shapes)))

    item_shape = args[0] if args else Any
    items = [_convert(item, item_shape, '{}[{}]'.format(path, index))
             for index, item in enumerate(document)]
    if _is_subclass(origin, abc.Set):
        try:
            return set(items) if _is_subclass(origin, abc.MutableSet) else frozenset(items)
        except TypeError as e:
            raise DecodeError('{}: items are not hashable: {}'.format(path, e)) from e
    return items


def _is_subclass(origin: Any, parent: Any) -> bool:
    try:
        return isinstance(origin, type) and issubclass(origin, parent)
    except TypeError:
        return False


def _convert_record(document: Any, shape: type, path: str) -> Any:
    if not isinstance(document, dict):
        raise _mismatch(path, shape.__name__, document)

    try:
        hints = typing.get_type_hints(shape)
    except NameError as e:
        raise DecodeError('{}: cannot resolve the fields of {}: {}'.format(path, shape.__name__, e)) from e

    values = {}
    for f in dataclasses.fields(shape):
        if not f.init:
            continue
        field_path = '{}.{}'.format(path, f.name)
        if f.name in document:
            values[f.name] = _convert(document[f.name], hints.get(f.name, Any), field_path)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise DecodeError('{}: missing required field'.format(field_path))

    try:
        return shape(**values)
    except (TypeError, ValueError) as e:
        raise DecodeError('{}: {}'.format(path, e)) from e

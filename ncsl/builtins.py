"""
ncsl/builtins.py - the framework surface NCSL programs can call.

Each :class:`BuiltinType` lists its members with their return types
written as type names.  Type parameters (``T``, ``TKey``, ``TValue``)
are substituted with the receiver's type arguments at the call site.
``Enumerable`` members are extension methods: any receiver with an
element type can call them, and ``T`` becomes that element type.

Member parameter lists use a compact text form::

    "String value"            a plain parameter
    "out Uri result"          an out parameter
    "params Object[] args"    a params array
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Tuple

from nullcontracts.semantic import SymbolKind

__all__ = [
    "BuiltinMember",
    "BuiltinType",
    "BUILTIN_TYPES",
    "TYPE_ALIASES",
    "VALUE_TYPES",
    "EXTENSION_CONTAINER",
    "CONSTRUCTOR_NAME",
]

#: Member name used for constructor symbols.
CONSTRUCTOR_NAME = ".ctor"

#: Type holding extension methods for every enumerable receiver.
EXTENSION_CONTAINER = "Enumerable"

TYPE_ALIASES: Dict[str, str] = {
    "string": "String",
    "object": "Object",
    "bool": "Boolean",
    "int": "Int32",
    "long": "Int64",
    "double": "Double",
    "float": "Single",
    "decimal": "Decimal",
    "char": "Char",
    "byte": "Byte",
    "void": "Void",
}

VALUE_TYPES: FrozenSet[str] = frozenset({
    "Boolean", "Int32", "Int64", "Double", "Single", "Decimal", "Char",
    "Byte", "Guid", "DateTime", "TimeSpan", "KeyValuePair", "Void",
})


@dataclass(frozen=True)
class BuiltinMember:
    name: str
    kind: SymbolKind
    type: str
    parameters: Tuple[str, ...] = ()
    is_static: bool = False


@dataclass(frozen=True)
class BuiltinType:
    name: str
    type_parameters: Tuple[str, ...] = ()
    members: Tuple[BuiltinMember, ...] = ()

    @property
    def is_value_type(self) -> bool:
        return self.name in VALUE_TYPES


def _method(name: str, returns: str, *parameters: str, static: bool = False) -> BuiltinMember:
    return BuiltinMember(name, SymbolKind.METHOD, returns, parameters, static)


def _property(name: str, type_name: str, static: bool = False) -> BuiltinMember:
    return BuiltinMember(name, SymbolKind.PROPERTY, type_name, (), static)


def _field(name: str, type_name: str) -> BuiltinMember:
    return BuiltinMember(name, SymbolKind.FIELD, type_name, (), True)


def _ctor(*parameters: str) -> BuiltinMember:
    return BuiltinMember(CONSTRUCTOR_NAME, SymbolKind.METHOD, "Void", parameters)


_OBJECT_MEMBERS = (
    _method("ToString", "String"),
    _method("GetHashCode", "Int32"),
    _method("Equals", "Boolean", "Object other"),
)

_TYPES = (
    BuiltinType("Object", (), _OBJECT_MEMBERS + (_ctor(),)),
    BuiltinType("String", (), (
        _field("Empty", "String"),
        _property("Length", "Int32"),
        _method("IsNullOrEmpty", "Boolean", "String value", static=True),
        _method("IsNullOrWhiteSpace", "Boolean", "String value", static=True),
        _method("Format", "String", "String format", "params Object[] args", static=True),
        _method("Concat", "String", "params Object[] args", static=True),
        _method("Substring", "String", "Int32 startIndex"),
        _method("Replace", "String", "String oldValue", "String newValue"),
        _method("Trim", "String"),
        _method("ToUpper", "String"),
        _method("Contains", "Boolean", "String value"),
        _method("StartsWith", "Boolean", "String value"),
    )),
    BuiltinType("Uri", (), (
        _ctor("String uriString"),
        _property("Host", "String"),
        _property("AbsolutePath", "String"),
        _method("TryCreate", "Boolean", "String uriString", "UriKind kind", "out Uri result",
                static=True),
    )),
    BuiltinType("UriKind", (), (_field("Absolute", "UriKind"), _field("Relative", "UriKind"))),
    BuiltinType("Guid", (), (
        _field("Empty", "Guid"),
        _method("NewGuid", "Guid", static=True),
        _method("ToString", "String"),
    )),
    BuiltinType("Int32", (), (
        _method("ToString", "String"),
        _method("Parse", "Int32", "String s", static=True),
        _method("TryParse", "Boolean", "String s", "out Int32 result", static=True),
    )),
    BuiltinType("Int64", (), (
        _method("ToString", "String"),
        _method("Parse", "Int64", "String s", static=True),
    )),
    BuiltinType("Boolean", (), (_method("ToString", "String"),)),
    BuiltinType("Nullable", ("T",), (
        _property("HasValue", "Boolean"),
        _property("Value", "T"),
    )),
    BuiltinType("KeyValuePair", ("TKey", "TValue"), (
        _property("Key", "TKey"),
        _property("Value", "TValue"),
    )),
    BuiltinType("IEnumerable", ("T",), ()),
    BuiltinType("Array", ("T",), (_property("Length", "Int32"),)),
    BuiltinType("List", ("T",), (
        _ctor(),
        _property("Count", "Int32"),
        _method("Add", "Void", "T item"),
        _method("Contains", "Boolean", "T item"),
        _method("Remove", "Boolean", "T item"),
        _method("Clear", "Void"),
    )),
    BuiltinType("Dictionary", ("TKey", "TValue"), (
        _ctor(),
        _property("Count", "Int32"),
        _property("Keys", "IEnumerable<TKey>"),
        _property("Values", "IEnumerable<TValue>"),
        _method("ContainsKey", "Boolean", "TKey key"),
        _method("TryGetValue", "Boolean", "TKey key", "out TValue value"),
        _method("Add", "Void", "TKey key", "TValue value"),
        _method("Remove", "Boolean", "TKey key"),
    )),
    BuiltinType(EXTENSION_CONTAINER, (), (
        _method("Where", "IEnumerable<T>", "Func predicate", static=True),
        _method("Select", "IEnumerable<Object>", "Func selector", static=True),
        _method("ToList", "List<T>", static=True),
        _method("ToArray", "T[]", static=True),
        _method("First", "T", static=True),
        _method("FirstOrDefault", "T", static=True),
        _method("Any", "Boolean", static=True),
        _method("Count", "Int32", static=True),
    )),
    BuiltinType("Path", (), (
        _method("GetTempPath", "String", static=True),
        _method("Combine", "String", "String first", "String second", static=True),
        _method("GetFileName", "String", "String path", static=True),
        _method("GetDirectoryName", "String", "String path", static=True),
    )),
    BuiltinType("Marshal", (), (
        _method("GetObjectForIUnknown", "Object", "IntPtr pointer", static=True),
    )),
    BuiltinType("Task", (), (
        _method("FromResult", "Task", "Object result", static=True),
        _method("ConfigureAwait", "Task", "Boolean continueOnCapturedContext"),
        _method("Delay", "Task", "Int32 milliseconds", static=True),
    )),
    BuiltinType("Console", (), (
        _method("WriteLine", "Void", "Object value", static=True),
        _method("ReadLine", "String", static=True),
    )),
    BuiltinType("Environment", (), (
        _method("GetEnvironmentVariable", "String", "String variable", static=True),
        _property("NewLine", "String", static=True),
    )),
    BuiltinType("Exception", (), (_ctor("String message"), _property("Message", "String"))),
    BuiltinType("ArgumentNullException", (), (_ctor("String paramName"),)),
    BuiltinType("ArgumentException", (), (_ctor("String message"),)),
    BuiltinType("InvalidOperationException", (), (_ctor("String message"),)),
    BuiltinType("Constraint", (), (
        _method("NotNull", "Void", "Func accessor", static=True),
    )),
    BuiltinType("Func", (), ()),
    BuiltinType("IntPtr", (), ()),
)

BUILTIN_TYPES: Dict[str, BuiltinType] = {t.name: t for t in _TYPES}

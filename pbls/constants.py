"""Language tables shared by the parser, index and completion engine."""

from __future__ import annotations

from typing import Dict, Tuple

SCALAR_TYPES: tuple[str, ...] = (
    "bool",
    "bytes",
    "double",
    "fixed32",
    "fixed64",
    "float",
    "int32",
    "int64",
    "sfixed32",
    "sfixed64",
    "sint32",
    "sint64",
    "string",
    "uint32",
    "uint64",
)

# Map keys may be any integral or string scalar.
MAP_KEY_TYPES: tuple[str, ...] = tuple(
    name for name in SCALAR_TYPES if name not in {"bytes", "double", "float"}
)

FIELD_LABELS: tuple[str, ...] = ("optional", "repeated", "required")

# Keywords that begin a declaration; the parser resynchronises before them
# when they start a new line.
DECLARATION_KEYWORDS: frozenset[str] = frozenset(
    {
        "edition",
        "enum",
        "extend",
        "import",
        "message",
        "oneof",
        "option",
        "package",
        "rpc",
        "service",
        "syntax",
    }
)

TOP_LEVEL_KEYWORDS: tuple[str, ...] = (
    "edition",
    "enum",
    "extend",
    "import",
    "message",
    "option",
    "package",
    "service",
    "syntax",
)

MESSAGE_KEYWORDS: tuple[str, ...] = (
    "enum",
    "extend",
    "extensions",
    "map",
    "message",
    "oneof",
    "option",
    "optional",
    "repeated",
    "required",
    "reserved",
)

ENUM_KEYWORDS: tuple[str, ...] = ("option", "reserved")

SERVICE_KEYWORDS: tuple[str, ...] = ("option", "rpc")

ONEOF_KEYWORDS: tuple[str, ...] = ("option",)

SYNTAX_SNIPPETS: tuple[str, ...] = ('syntax = "proto3";', 'syntax = "proto2";')

FILE_OPTIONS: tuple[str, ...] = (
    "cc_enable_arenas",
    "cc_generic_services",
    "csharp_namespace",
    "deprecated",
    "features",
    "go_package",
    "java_generate_equals_and_hash",
    "java_generic_services",
    "java_multiple_files",
    "java_outer_classname",
    "java_package",
    "java_string_check_utf8",
    "objc_class_prefix",
    "optimize_for",
    "php_class_prefix",
    "php_metadata_namespace",
    "php_namespace",
    "py_generic_services",
    "ruby_package",
    "swift_prefix",
)

MESSAGE_OPTIONS: tuple[str, ...] = (
    "deprecated",
    "features",
    "map_entry",
    "message_set_wire_format",
    "no_standard_descriptor_accessor",
)

FIELD_OPTIONS: tuple[str, ...] = (
    "ctype",
    "debug_redact",
    "default",
    "deprecated",
    "features",
    "json_name",
    "jstype",
    "lazy",
    "packed",
    "retention",
    "targets",
    "unverified_lazy",
    "weak",
)

ONEOF_OPTIONS: tuple[str, ...] = ("features",)

ENUM_OPTIONS: tuple[str, ...] = ("allow_alias", "deprecated", "features")

ENUM_VALUE_OPTIONS: tuple[str, ...] = ("debug_redact", "deprecated", "features")

SERVICE_OPTIONS: tuple[str, ...] = ("deprecated", "features")

METHOD_OPTIONS: tuple[str, ...] = ("deprecated", "features", "idempotency_level")

# Declaration kind -> (built-in option names, descriptor options message).
OPTION_TABLES: Dict[str, Tuple[tuple[str, ...], str]] = {
    "file": (FILE_OPTIONS, "google.protobuf.FileOptions"),
    "message": (MESSAGE_OPTIONS, "google.protobuf.MessageOptions"),
    "field": (FIELD_OPTIONS, "google.protobuf.FieldOptions"),
    "oneof": (ONEOF_OPTIONS, "google.protobuf.OneofOptions"),
    "enum": (ENUM_OPTIONS, "google.protobuf.EnumOptions"),
    "enum_value": (ENUM_VALUE_OPTIONS, "google.protobuf.EnumValueOptions"),
    "service": (SERVICE_OPTIONS, "google.protobuf.ServiceOptions"),
    "method": (METHOD_OPTIONS, "google.protobuf.MethodOptions"),
}

WELL_KNOWN_PREFIX = "google/protobuf/"

# Fully qualified name -> (symbol kind value, defining file).
WELL_KNOWN_TYPES: Dict[str, Tuple[str, str]] = {
    "google.protobuf.Any": ("message", "google/protobuf/any.proto"),
    "google.protobuf.Api": ("message", "google/protobuf/api.proto"),
    "google.protobuf.Method": ("message", "google/protobuf/api.proto"),
    "google.protobuf.Mixin": ("message", "google/protobuf/api.proto"),
    "google.protobuf.Duration": ("message", "google/protobuf/duration.proto"),
    "google.protobuf.Empty": ("message", "google/protobuf/empty.proto"),
    "google.protobuf.FieldMask": ("message", "google/protobuf/field_mask.proto"),
    "google.protobuf.SourceContext": ("message", "google/protobuf/source_context.proto"),
    "google.protobuf.Struct": ("message", "google/protobuf/struct.proto"),
    "google.protobuf.Value": ("message", "google/protobuf/struct.proto"),
    "google.protobuf.ListValue": ("message", "google/protobuf/struct.proto"),
    "google.protobuf.NullValue": ("enum", "google/protobuf/struct.proto"),
    "google.protobuf.Timestamp": ("message", "google/protobuf/timestamp.proto"),
    "google.protobuf.Type": ("message", "google/protobuf/type.proto"),
    "google.protobuf.Field": ("message", "google/protobuf/type.proto"),
    "google.protobuf.Enum": ("message", "google/protobuf/type.proto"),
    "google.protobuf.EnumValue": ("message", "google/protobuf/type.proto"),
    "google.protobuf.Option": ("message", "google/protobuf/type.proto"),
    "google.protobuf.Syntax": ("enum", "google/protobuf/type.proto"),
    "google.protobuf.DoubleValue": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.FloatValue": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.Int64Value": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.UInt64Value": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.Int32Value": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.UInt32Value": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.BoolValue": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.StringValue": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.BytesValue": ("message", "google/protobuf/wrappers.proto"),
    "google.protobuf.FileOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.MessageOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.FieldOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.OneofOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.EnumOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.EnumValueOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.ServiceOptions": ("message", "google/protobuf/descriptor.proto"),
    "google.protobuf.MethodOptions": ("message", "google/protobuf/descriptor.proto"),
}

WELL_KNOWN_FILES: frozenset[str] = frozenset(
    file for _, file in WELL_KNOWN_TYPES.values()
)


__all__ = [
    "DECLARATION_KEYWORDS",
    "ENUM_KEYWORDS",
    "FIELD_LABELS",
    "MAP_KEY_TYPES",
    "MESSAGE_KEYWORDS",
    "ONEOF_KEYWORDS",
    "OPTION_TABLES",
    "SCALAR_TYPES",
    "SERVICE_KEYWORDS",
    "SYNTAX_SNIPPETS",
    "TOP_LEVEL_KEYWORDS",
    "WELL_KNOWN_FILES",
    "WELL_KNOWN_PREFIX",
    "WELL_KNOWN_TYPES",
]

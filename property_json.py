#!/usr/bin/env python3
"""
Property JSON Mapping
=====================

Converts PropertyTag objects to JSON-compatible Python objects and back, in
the shape a hand editor works with. Only information the binary writer needs
is kept; anything that is None or at its default is left out.

Property Object Keys (in output order):
--------------------------------------
| Key            | Present when                                       |
|----------------|----------------------------------------------------|
| Name           | always                                             |
| Type           | always                                             |
| ArrayIndex     | static array index is not 0                        |
| PropertyGuid   | tag carries a property GUID                        |
| StructType     | StructProperty, or array of StructProperty         |
| StructGuid     | struct GUID is not all zero                        |
| EnumType       | ByteProperty/EnumProperty with a real enum         |
| ItemType       | ArrayProperty, SetProperty                         |
| KeyType        | MapProperty                                        |
| ValueType      | MapProperty                                        |
| PrototypeName  | struct array prototype named differently from array |
| PrototypeGuid  | struct array prototype carries a property GUID     |
| PrototypeArrayIndex | struct array prototype index is not 0         |
| Value          | value is not null                                  |

Byte arrays and opaque values (delegates, interfaces, ...) are written as
base64 strings. GUIDs are 32-digit hex strings.

Text values are objects (Flags, HistoryType and the history's strings). Map
values are arrays of {"Key": ..., "Value": ...} objects and Set values are
arrays of elements; struct elements are property arrays. A Text, Map or Set
whose binary layout could not be decoded is a base64 string instead.
"""

import base64
import binascii
import json
from typing import Any, List, Optional, TextIO

from ue_properties import (
    CORE_STRUCT_LAYOUTS,
    GUID_STRUCT,
    KNOWN_PROPERTY_TYPES,
    MAP_TYPE,
    OPAQUE_TYPES,
    SCALAR_FORMATS,
    SOFT_OBJECT_LAYOUT,
    STRING_TYPES,
    STRUCTURED_TYPES,
    TAG_CONTAINER_STRUCT,
    TERMINATOR,
    TEXT_BASE_FIELDS,
    TEXT_HISTORY_BASE,
    TEXT_HISTORY_NONE,
    TEXT_INVARIANT_FIELD,
    TEXT_TYPE,
    ZERO_GUID,
    PropertyTag,
)


JSON_INDENT = 2

FLOAT_TYPES = frozenset({'FloatProperty', 'DoubleProperty'})


class PropertyJsonError(ValueError):
    """A JSON object does not describe a valid property."""


# =============================================================================
# HELPERS
# =============================================================================

def write_json(obj: Any, stream: TextIO) -> None:
    """Write `obj` as indented JSON (2 spaces, non-ASCII kept as-is)."""
    json.dump(obj, stream, indent=JSON_INDENT, ensure_ascii=False)


def _encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def _decode_bytes(value: Any, what: str) -> bytes:
    if not isinstance(value, str):
        raise PropertyJsonError(f"{what}: expected a base64 string, got {type(value).__name__}")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PropertyJsonError(f"{what}: invalid base64 data ({e})") from e


def _decode_guid(value: Any, what: str) -> bytes:
    try:
        guid = bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise PropertyJsonError(f"{what}: invalid GUID {value!r}") from e
    if len(guid) != 16:
        raise PropertyJsonError(f"{what}: GUID must be 32 hex digits, got {value!r}")
    return guid


def _optional_str(obj: dict, key: str, what: str) -> Optional[str]:
    value = obj.get(key)
    if value is not None and not isinstance(value, str):
        raise PropertyJsonError(f"{what}: '{key}' must be a string")
    return value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# =============================================================================
# PROPERTY -> JSON
# =============================================================================

def property_to_json(prop: PropertyTag) -> dict:
    """Convert one PropertyTag into a JSON-compatible dict."""
    obj = {'Name': prop.name, 'Type': prop.type_name}

    if prop.array_index:
        obj['ArrayIndex'] = prop.array_index
    if prop.property_guid is not None:
        obj['PropertyGuid'] = prop.property_guid.hex()

    struct_type = prop.struct_type
    struct_guid = prop.struct_guid
    if prop.prototype is not None:
        struct_type = prop.prototype.struct_type
        struct_guid = prop.prototype.struct_guid
    if struct_type is not None:
        obj['StructType'] = struct_type
    if struct_guid and struct_guid != ZERO_GUID:
        obj['StructGuid'] = struct_guid.hex()

    if prop.enum_type is not None and prop.enum_type != TERMINATOR:
        obj['EnumType'] = prop.enum_type
    if prop.item_type is not None:
        obj['ItemType'] = prop.item_type
    if prop.key_type is not None:
        obj['KeyType'] = prop.key_type
    if prop.value_type is not None:
        obj['ValueType'] = prop.value_type

    if prop.prototype is not None:
        if prop.prototype.name != prop.name:
            obj['PrototypeName'] = prop.prototype.name
        if prop.prototype.property_guid is not None:
            obj['PrototypeGuid'] = prop.prototype.property_guid.hex()
        if prop.prototype.array_index:
            obj['PrototypeArrayIndex'] = prop.prototype.array_index

    value = _value_to_json(prop)
    if value is not None:
        obj['Value'] = value
    return obj


def properties_to_json(properties: List[PropertyTag]) -> List[dict]:
    return [property_to_json(prop) for prop in properties]


def _value_to_json(prop: PropertyTag) -> Any:
    if prop.value is None:
        return None
    if prop.type_name == 'StructProperty':
        return _struct_to_json(prop.struct_type, prop.value)
    if prop.type_name == 'ArrayProperty':
        if prop.item_type == 'ByteProperty' or prop.item_type in OPAQUE_TYPES:
            return _encode_bytes(prop.value)
        if prop.item_type == 'StructProperty':
            struct_type = prop.prototype.struct_type if prop.prototype else None
            return [_struct_to_json(struct_type, element) for element in prop.value]
        return list(prop.value)
    if prop.type_name in STRUCTURED_TYPES and not isinstance(prop.value, (bytes, bytearray)):
        return _structured_to_json(prop)
    if prop.type_name in OPAQUE_TYPES:
        return _encode_bytes(prop.value)
    return prop.value


def _struct_to_json(struct_type: Optional[str], value: Any) -> Any:
    if struct_type in CORE_STRUCT_LAYOUTS or struct_type in (GUID_STRUCT, TAG_CONTAINER_STRUCT):
        return value
    return properties_to_json(value)


def _structured_to_json(prop: PropertyTag) -> Any:
    if prop.type_name == TEXT_TYPE:
        return dict(prop.value)
    if prop.type_name == MAP_TYPE:
        return [
            {'Key': _element_to_json(prop.key_type, key), 'Value': _element_to_json(prop.value_type, value)}
            for key, value in prop.value
        ]
    return [_element_to_json(prop.item_type, element) for element in prop.value]


def _element_to_json(type_name: Optional[str], value: Any) -> Any:
    if type_name == 'StructProperty':
        return properties_to_json(value)
    return value


# =============================================================================
# JSON -> PROPERTY
# =============================================================================

def json_to_property(obj: Any) -> PropertyTag:
    """
    Convert a JSON property object back into a PropertyTag.

    Args:
        obj: Parsed JSON object (dict)

    Returns:
        PropertyTag ready for the binary writer

    Raises:
        PropertyJsonError: The object is not a valid property description
    """
    if not isinstance(obj, dict):
        raise PropertyJsonError(f"Property must be a JSON object, got {type(obj).__name__}")

    name = obj.get('Name')
    type_name = obj.get('Type')
    if not isinstance(name, str):
        raise PropertyJsonError("Property is missing a string 'Name'")
    if type_name not in KNOWN_PROPERTY_TYPES:
        raise PropertyJsonError(f"Property '{name}' has unknown Type {type_name!r}")
    what = f"Property '{name}' ({type_name})"

    prop = PropertyTag(name=name, type_name=type_name)

    array_index = obj.get('ArrayIndex', 0)
    if not _is_int(array_index):
        raise PropertyJsonError(f"{what}: 'ArrayIndex' must be an integer")
    prop.array_index = array_index
    if obj.get('PropertyGuid') is not None:
        prop.property_guid = _decode_guid(obj['PropertyGuid'], what)

    struct_type = _optional_str(obj, 'StructType', what)
    struct_guid = ZERO_GUID
    if obj.get('StructGuid') is not None:
        struct_guid = _decode_guid(obj['StructGuid'], what)

    prop.enum_type = _optional_str(obj, 'EnumType', what)
    if type_name in ('ByteProperty', 'EnumProperty') and prop.enum_type is None:
        prop.enum_type = TERMINATOR
    prop.item_type = _optional_str(obj, 'ItemType', what)
    prop.key_type = _optional_str(obj, 'KeyType', what)
    prop.value_type = _optional_str(obj, 'ValueType', what)

    if type_name == 'StructProperty':
        if struct_type is None:
            raise PropertyJsonError(f"{what}: 'StructType' is required")
        prop.struct_type = struct_type
        prop.struct_guid = struct_guid
    elif type_name == 'ArrayProperty':
        if prop.item_type not in KNOWN_PROPERTY_TYPES:
            raise PropertyJsonError(f"{what}: unknown ItemType {prop.item_type!r}")
        if prop.item_type == 'StructProperty':
            if struct_type is None:
                raise PropertyJsonError(f"{what}: 'StructType' is required for struct arrays")
            prop.prototype = PropertyTag(
                name=_optional_str(obj, 'PrototypeName', what) or name,
                type_name='StructProperty',
                struct_type=struct_type,
                struct_guid=struct_guid,
            )
            if obj.get('PrototypeGuid') is not None:
                prop.prototype.property_guid = _decode_guid(obj['PrototypeGuid'], what)
            prototype_index = obj.get('PrototypeArrayIndex', 0)
            if not _is_int(prototype_index):
                raise PropertyJsonError(f"{what}: 'PrototypeArrayIndex' must be an integer")
            prop.prototype.array_index = prototype_index

    value = obj.get('Value')
    if value is not None:
        prop.value = _value_from_json(prop, value, what)
    elif type_name == 'BoolProperty':
        prop.value = False
    return prop


def json_to_properties(items: Any) -> List[PropertyTag]:
    if not isinstance(items, list):
        raise PropertyJsonError(f"Expected a JSON array of properties, got {type(items).__name__}")
    return [json_to_property(item) for item in items]


def _value_from_json(prop: PropertyTag, value: Any, what: str) -> Any:
    type_name = prop.type_name

    if type_name == 'BoolProperty':
        if not isinstance(value, bool):
            raise PropertyJsonError(f"{what}: expected true or false")
        return value
    if type_name in FLOAT_TYPES:
        if not (_is_int(value) or isinstance(value, float)):
            raise PropertyJsonError(f"{what}: expected a number")
        return float(value)
    if type_name in SCALAR_FORMATS:
        if not _is_int(value):
            raise PropertyJsonError(f"{what}: expected an integer")
        return value
    if type_name in STRING_TYPES:
        if not isinstance(value, str):
            raise PropertyJsonError(f"{what}: expected a string")
        return value
    if type_name == 'ByteProperty':
        if prop.enum_type == TERMINATOR:
            if not _is_int(value):
                raise PropertyJsonError(f"{what}: expected an integer byte value")
        elif not isinstance(value, str):
            raise PropertyJsonError(f"{what}: expected an enum value name")
        return value
    if type_name == 'SoftObjectProperty':
        return _check_layout(SOFT_OBJECT_LAYOUT, value, what)
    if type_name == 'StructProperty':
        return _struct_from_json(prop.struct_type, value, what)
    if type_name == 'ArrayProperty':
        return _array_from_json(prop, value, what)
    if type_name in STRUCTURED_TYPES and not isinstance(value, str):
        return _structured_from_json(prop, value, what)
    return _decode_bytes(value, what)


def _struct_from_json(struct_type: Optional[str], value: Any, what: str) -> Any:
    if struct_type == GUID_STRUCT:
        _decode_guid(value, what)
        return value
    if struct_type == TAG_CONTAINER_STRUCT:
        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            raise PropertyJsonError(f"{what}: expected a list of tag names")
        return value
    if struct_type in CORE_STRUCT_LAYOUTS:
        return _check_layout(CORE_STRUCT_LAYOUTS[struct_type], value, f"{what} {struct_type}")
    if not isinstance(value, list):
        raise PropertyJsonError(f"{what}: expected a list of properties for {struct_type}")
    return json_to_properties(value)


def _array_from_json(prop: PropertyTag, value: Any, what: str) -> Any:
    item_type = prop.item_type
    if item_type == 'ByteProperty' or item_type in OPAQUE_TYPES:
        return _decode_bytes(value, what)
    if not isinstance(value, list):
        raise PropertyJsonError(f"{what}: expected a JSON array")
    if item_type == 'StructProperty':
        return [_struct_from_json(prop.prototype.struct_type, element, what) for element in value]
    if item_type in FLOAT_TYPES:
        if not all(_is_int(item) or isinstance(item, float) for item in value):
            raise PropertyJsonError(f"{what}: expected an array of numbers")
        return [float(item) for item in value]
    if item_type == 'SoftObjectProperty':
        return [_check_layout(SOFT_OBJECT_LAYOUT, element, what) for element in value]
    return value


def _check_layout(layout, value: Any, what: str) -> dict:
    """Validate a fixed-layout struct object; missing fields default on write."""
    if not isinstance(value, dict):
        fields = ', '.join(field_name for field_name, _ in layout)
        raise PropertyJsonError(f"{what}: expected an object with fields {fields}, got {type(value).__name__}")
    for field_name, fmt in layout:
        field_value = value.get(field_name)
        if field_value is None:
            continue
        if fmt == 's':
            ok = isinstance(field_value, str)
        elif fmt in CORE_STRUCT_LAYOUTS:
            _check_layout(CORE_STRUCT_LAYOUTS[fmt], field_value, f"{what}.{field_name}")
            continue
        elif fmt in ('f', 'd'):
            ok = _is_int(field_value) or isinstance(field_value, float)
        else:
            ok = _is_int(field_value)
        if not ok:
            raise PropertyJsonError(f"{what}: field '{field_name}' has invalid value {field_value!r}")
    return value


# =============================================================================
# TEXT, MAP AND SET VALUES
# =============================================================================

def _structured_from_json(prop: PropertyTag, value: Any, what: str) -> Any:
    if prop.type_name == TEXT_TYPE:
        return _text_from_json(value, what)
    if not isinstance(value, list):
        raise PropertyJsonError(f"{what}: expected a JSON array or a base64 string")
    if prop.type_name == MAP_TYPE:
        entries = []
        for entry in value:
            if not isinstance(entry, dict) or 'Key' not in entry:
                raise PropertyJsonError(f"{what}: map entries must be objects with 'Key' and 'Value'")
            entries.append((
                _element_from_json(prop.key_type, entry['Key'], f"{what} key"),
                _element_from_json(prop.value_type, entry.get('Value'), f"{what} value"),
            ))
        return entries
    return [_element_from_json(prop.item_type, element, f"{what} element") for element in value]


def _text_from_json(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise PropertyJsonError(f"{what}: expected a text object or a base64 string")
    history = value.get('HistoryType', TEXT_HISTORY_NONE)
    if history == TEXT_HISTORY_NONE:
        string_fields = (TEXT_INVARIANT_FIELD,)
    elif history == TEXT_HISTORY_BASE:
        string_fields = TEXT_BASE_FIELDS
    else:
        raise PropertyJsonError(f"{what}: unsupported HistoryType {history!r}")
    flags = value.get('Flags', 0)
    if not _is_int(flags) or flags < 0:
        raise PropertyJsonError(f"{what}: 'Flags' must be a non-negative integer")
    for field_name in string_fields:
        field_value = value.get(field_name)
        if field_value is not None and not isinstance(field_value, str):
            raise PropertyJsonError(f"{what}: '{field_name}' must be a string")
    return dict(value)


def _element_from_json(type_name: Optional[str], value: Any, what: str) -> Any:
    if type_name == 'StructProperty':
        if not isinstance(value, list):
            raise PropertyJsonError(f"{what}: expected a list of properties")
        return json_to_properties(value)
    if type_name == 'BoolProperty':
        if not isinstance(value, bool):
            raise PropertyJsonError(f"{what}: expected true or false")
        return value
    if type_name in FLOAT_TYPES:
        if not (_is_int(value) or isinstance(value, float)):
            raise PropertyJsonError(f"{what}: expected a number")
        return float(value)
    if type_name == 'ByteProperty' or type_name in SCALAR_FORMATS:
        if not _is_int(value):
            raise PropertyJsonError(f"{what}: expected an integer")
        return value
    if type_name in STRING_TYPES:
        if value is not None and not isinstance(value, str):
            raise PropertyJsonError(f"{what}: expected a string")
        return value
    if type_name == 'SoftObjectProperty':
        return _check_layout(SOFT_OBJECT_LAYOUT, value, what)
    raise PropertyJsonError(f"{what}: {type_name} elements can only be given as base64")

#!/usr/bin/env python3
"""
UE4 Tagged Property Serialization
=================================

Reads and writes the Unreal Engine 4 tagged property streams stored inside
Icarus prospect saves. Both the prospect data blob and every state recorder
blob use this encoding.

Property Tag Layout (little-endian):
-----------------------------------
| Field          | Type     | Notes                                        |
|----------------|----------|----------------------------------------------|
| Name           | FString  | "None" terminates a property list            |
| Type           | FString  | e.g. IntProperty, StructProperty             |
| Size           | int32    | Byte length of the value that follows        |
| ArrayIndex     | int32    | Static array index, almost always 0          |
| Type header    | varies   | See table below                              |
| HasGuid        | uint8    | Followed by a 16-byte GUID when non-zero     |
| Value          | Size     |                                              |

| Type                     | Type header                      |
|--------------------------|----------------------------------|
| StructProperty           | struct name FString + 16-byte GUID |
| BoolProperty             | value byte (the value has size 0) |
| ByteProperty, EnumProperty | enum name FString              |
| ArrayProperty, SetProperty | inner type FString             |
| MapProperty              | key type FString + value type FString |

Arrays of structs carry a prototype tag between the element count and the
element data. The prototype's size field is the byte length of all elements.

A top-level stream is a property list, its "None" terminator and a 4-byte zero
trailer.

Text, Map and Set values are decoded when their layout is known:

| Type          | Decoded value                                        |
|---------------|------------------------------------------------------|
| TextProperty  | dict: Flags, HistoryType, then the history's strings  |
| MapProperty   | list of (key, value) pairs                           |
| SetProperty   | list of elements                                     |

Map and Set elements are untagged: numbers, bools, bytes and strings at their
fixed width, struct elements as a property list. Any other layout stays raw
bytes.

Usage:
    from ue_properties import PropertySerializer

    serializer = PropertySerializer()
    properties = serializer.deserialize(binary_data)
    new_binary = serializer.serialize(properties)
"""

import enum
import struct
from dataclasses import dataclass
from io import BytesIO
from typing import Any, List, Optional, Tuple


# =============================================================================
# CONSTANTS
# =============================================================================

ZERO_GUID = bytes(16)

# Written after the "None" terminator of a top-level stream
STREAM_TRAILER = b'\x00\x00\x00\x00'

TERMINATOR = 'None'

# Fixed-width numeric properties and their struct format
SCALAR_FORMATS = {
    'Int8Property': '<b',
    'Int16Property': '<h',
    'IntProperty': '<i',
    'Int64Property': '<q',
    'UInt16Property': '<H',
    'UInt32Property': '<I',
    'UInt64Property': '<Q',
    'FloatProperty': '<f',
    'DoubleProperty': '<d',
}

# Properties whose value is a single FString
STRING_TYPES = frozenset({
    'StrProperty',
    'NameProperty',
    'ObjectProperty',
    'EnumProperty',
})

# Properties kept as their exact value bytes (see STRUCTURED_TYPES for exceptions)
OPAQUE_TYPES = frozenset({
    'TextProperty',
    'MapProperty',
    'SetProperty',
    'LazyObjectProperty',
    'WeakObjectProperty',
    'InterfaceProperty',
    'FieldPathProperty',
    'DelegateProperty',
    'MulticastDelegateProperty',
    'MulticastInlineDelegateProperty',
    'MulticastSparseDelegateProperty',
})

# Opaque types decoded into a structured value when their layout is understood.
# The raw bytes are kept whenever the decoded value would not re-encode to
# exactly the same bytes.
TEXT_TYPE = 'TextProperty'
MAP_TYPE = 'MapProperty'
SET_TYPE = 'SetProperty'
STRUCTURED_TYPES = frozenset({TEXT_TYPE, MAP_TYPE, SET_TYPE})

# FText history types with a known layout
TEXT_HISTORY_NONE = -1
TEXT_HISTORY_BASE = 0
TEXT_BASE_FIELDS = ('Namespace', 'Key', 'SourceString')
TEXT_INVARIANT_FIELD = 'CultureInvariantString'

KNOWN_PROPERTY_TYPES = frozenset(SCALAR_FORMATS) | STRING_TYPES | OPAQUE_TYPES | {
    'BoolProperty',
    'ByteProperty',
    'SoftObjectProperty',
    'StructProperty',
    'ArrayProperty',
}

# Structs serialized with a fixed binary layout instead of a property list.
# Field formats are struct codes, 's' for an FString, or another layout name.
CORE_STRUCT_LAYOUTS = {
    'Vector': (('X', 'f'), ('Y', 'f'), ('Z', 'f')),
    'Vector2D': (('X', 'f'), ('Y', 'f')),
    'Vector4': (('X', 'f'), ('Y', 'f'), ('Z', 'f'), ('W', 'f')),
    'Rotator': (('Pitch', 'f'), ('Yaw', 'f'), ('Roll', 'f')),
    'Quat': (('X', 'f'), ('Y', 'f'), ('Z', 'f'), ('W', 'f')),
    'LinearColor': (('R', 'f'), ('G', 'f'), ('B', 'f'), ('A', 'f')),
    'Color': (('B', 'B'), ('G', 'B'), ('R', 'B'), ('A', 'B')),
    'IntPoint': (('X', 'i'), ('Y', 'i')),
    'IntVector': (('X', 'i'), ('Y', 'i'), ('Z', 'i')),
    'DateTime': (('Ticks', 'q'),),
    'Timespan': (('Ticks', 'q'),),
    'Box': (('Min', 'Vector'), ('Max', 'Vector'), ('IsValid', 'B')),
    'SoftObjectPath': (('AssetPathName', 's'), ('SubPathString', 's')),
    'SoftClassPath': (('AssetPathName', 's'), ('SubPathString', 's')),
}

# Core structs with a non-dict value
GUID_STRUCT = 'Guid'
TAG_CONTAINER_STRUCT = 'GameplayTagContainer'

CORE_STRUCT_TYPES = frozenset(CORE_STRUCT_LAYOUTS) | {GUID_STRUCT, TAG_CONTAINER_STRUCT}

SOFT_OBJECT_LAYOUT = CORE_STRUCT_LAYOUTS['SoftObjectPath']


# =============================================================================
# ERRORS
# =============================================================================

class PropertyFormatError(ValueError):
    """Binary property data is truncated or inconsistent."""


class UnknownPropertyTypeError(PropertyFormatError):
    """A property tag names a type this serializer does not know."""


# =============================================================================
# BINARY READER / WRITER
# =============================================================================

class BinaryReader:
    """Binary stream reader with UE4 type support."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    @property
    def position(self) -> int:
        return self.offset

    def read_bytes(self, n: int) -> bytes:
        if n < 0 or self.offset + n > len(self.data):
            raise PropertyFormatError(
                f"Cannot read {n} bytes at offset {self.offset}, only {self.remaining} remaining")
        result = self.data[self.offset:self.offset + n]
        self.offset += n
        return result

    def read_format(self, fmt: str) -> Any:
        return struct.unpack(fmt, self.read_bytes(struct.calcsize(fmt)))[0]

    def read_byte(self) -> int:
        return self.read_bytes(1)[0]

    def read_int32(self) -> int:
        return self.read_format('<i')

    def read_guid(self) -> bytes:
        return self.read_bytes(16)

    def read_fstring(self) -> Optional[str]:
        """
        Read UE4 FString with length prefix.

        Format:
        - length > 0: 8-bit string (length includes null terminator)
        - length < 0: UTF-16-LE string (-length = char count incl. terminator)
        - length == 0: null string
        """
        length = self.read_int32()
        if length == 0:
            return None
        if length < 0:
            data = self.read_bytes(-length * 2)
            return data[:-2].decode('utf-16-le', 'surrogatepass')
        data = self.read_bytes(length)
        return data[:-1].decode('latin-1')


class BinaryWriter:
    """Binary stream writer with UE4 type support."""

    def __init__(self, stream: Optional[BytesIO] = None):
        self.stream = stream or BytesIO()

    @property
    def position(self) -> int:
        return self.stream.tell()

    def get_bytes(self) -> bytes:
        return self.stream.getvalue()

    def write_bytes(self, data: bytes) -> int:
        return self.stream.write(data)

    def write_format(self, fmt: str, value: Any) -> int:
        try:
            packed = struct.pack(fmt, value)
        except struct.error as e:
            raise PropertyFormatError(f"Cannot encode {value!r} as '{fmt}': {e}") from e
        return self.write_bytes(packed)

    def write_byte(self, value: int) -> int:
        return self.write_format('<B', value)

    def write_int32(self, value: int) -> int:
        return self.write_format('<i', value)

    def write_guid(self, value: Optional[bytes]) -> int:
        guid = value or ZERO_GUID
        if len(guid) != 16:
            raise PropertyFormatError(f"GUID must be 16 bytes, got {len(guid)}")
        return self.write_bytes(guid)

    def write_fstring(self, value: Optional[str]) -> int:
        """Write UE4 FString with length prefix. Returns total bytes written."""
        if value is None:
            return self.write_int32(0)
        if not isinstance(value, str):
            raise PropertyFormatError(f"Expected a string, got {type(value).__name__}")

        try:
            encoded = value.encode('ascii') + b'\x00'
            self.write_int32(len(encoded))
        except UnicodeEncodeError:
            encoded = value.encode('utf-16-le', 'surrogatepass') + b'\x00\x00'
            self.write_int32(-(len(encoded) // 2))
        self.write_bytes(encoded)
        return 4 + len(encoded)

    def patch_int32(self, position: int, value: int) -> None:
        """Overwrite an int32 written earlier (size placeholders)."""
        end_pos = self.position
        self.stream.seek(position)
        self.write_int32(value)
        self.stream.seek(end_pos)


# =============================================================================
# PROPERTY MODEL
# =============================================================================

class PropertyTagFlags(enum.IntFlag):
    NONE = 0x00
    HAS_ARRAY_INDEX = 0x01
    HAS_PROPERTY_GUID = 0x02


@dataclass
class PropertyTag:
    """UE4 property metadata and value container."""

    name: str
    type_name: str
    value: Any = None

    array_index: int = 0
    property_guid: Optional[bytes] = None

    # Type-specific metadata
    struct_type: Optional[str] = None    # StructProperty
    struct_guid: bytes = ZERO_GUID       # StructProperty
    enum_type: Optional[str] = None      # ByteProperty, EnumProperty
    item_type: Optional[str] = None      # ArrayProperty, SetProperty
    key_type: Optional[str] = None       # MapProperty
    value_type: Optional[str] = None     # MapProperty

    # Static shape of struct array elements
    prototype: Optional['PropertyTag'] = None

    @property
    def flags(self) -> PropertyTagFlags:
        flags = PropertyTagFlags.NONE
        if self.array_index:
            flags |= PropertyTagFlags.HAS_ARRAY_INDEX
        if self.property_guid is not None:
            flags |= PropertyTagFlags.HAS_PROPERTY_GUID
        return flags

    def __repr__(self):
        if self.type_name == 'StructProperty':
            return f"PropertyTag({self.name}: {self.struct_type})"
        if self.type_name == 'ArrayProperty':
            count = len(self.value) if isinstance(self.value, (list, bytes)) else 0
            return f"PropertyTag({self.name}: {self.item_type}[{count}])"
        val = repr(self.value)
        if len(val) > 30:
            val = val[:30] + '...'
        return f"PropertyTag({self.name}: {self.type_name} = {val})"


def find_property(properties: List[PropertyTag], name: str) -> Optional[PropertyTag]:
    """Return the first property called `name`, or None."""
    for prop in properties:
        if prop.name == name:
            return prop
    return None


def _check_type(type_name: Optional[str]) -> None:
    if type_name not in KNOWN_PROPERTY_TYPES:
        raise UnknownPropertyTypeError(f"Unknown property type: {type_name!r}")


def _is_plain_byte(enum_type: Optional[str]) -> bool:
    return enum_type is None or enum_type == TERMINATOR


# =============================================================================
# PROPERTY SERIALIZER
# =============================================================================

class PropertySerializer:
    """
    UE4 property serialization helper.

    Handles reading and writing property lists with correct size field
    management.
    """

    def deserialize(self, data: bytes) -> List[PropertyTag]:
        """
        Deserialize a top-level property stream.

        Args:
            data: Property list, "None" terminator and optional 4-byte trailer

        Returns:
            Ordered list of PropertyTag objects

        Raises:
            PropertyFormatError: Truncated or inconsistent data
            UnknownPropertyTypeError: A tag names an unknown type
        """
        reader = BinaryReader(data)
        properties = self._read_properties(reader)

        if reader.remaining == len(STREAM_TRAILER):
            trailer = reader.read_bytes(len(STREAM_TRAILER))
            if trailer != STREAM_TRAILER:
                raise PropertyFormatError(
                    f"Stream trailer must be zero, got {trailer.hex()} at offset {reader.position - 4}")
        elif reader.remaining:
            raise PropertyFormatError(
                f"{reader.remaining} unexpected bytes after property list at offset {reader.position}")
        return properties

    def serialize(self, properties: List[PropertyTag]) -> bytes:
        """Serialize a top-level property stream (list, terminator, trailer)."""
        writer = BinaryWriter()
        self._write_properties(writer, properties)
        writer.write_bytes(STREAM_TRAILER)
        return writer.get_bytes()

    # -------------------------------------------------------------------------
    # Deserialization
    # -------------------------------------------------------------------------

    def _read_properties(self, reader: BinaryReader) -> List[PropertyTag]:
        """Read all properties until the 'None' terminator."""
        properties = []
        while True:
            if reader.remaining == 0:
                raise PropertyFormatError(
                    f"Property list truncated at offset {reader.position} (no terminator)")
            prop = self._read_property(reader)
            if prop is None:
                break
            properties.append(prop)
        return properties

    def _read_property(self, reader: BinaryReader) -> Optional[PropertyTag]:
        """Read a single property tag and value. Returns None at the terminator."""
        start_pos = reader.position

        name = reader.read_fstring()
        if name is None or name == TERMINATOR:
            return None

        type_name = reader.read_fstring()
        _check_type(type_name)

        size = reader.read_int32()
        if size < 0:
            raise PropertyFormatError(f"Property '{name}' at offset {start_pos} has negative size {size}")
        prop = PropertyTag(name=name, type_name=type_name, array_index=reader.read_int32())

        # Type header (outside of size)
        if type_name == 'StructProperty':
            prop.struct_type = reader.read_fstring()
            prop.struct_guid = reader.read_guid()
        elif type_name == 'BoolProperty':
            prop.value = reader.read_byte() != 0
        elif type_name in ('ByteProperty', 'EnumProperty'):
            prop.enum_type = reader.read_fstring()
        elif type_name in ('ArrayProperty', 'SetProperty'):
            prop.item_type = reader.read_fstring()
        elif type_name == 'MapProperty':
            prop.key_type = reader.read_fstring()
            prop.value_type = reader.read_fstring()

        if reader.read_byte():
            prop.property_guid = reader.read_guid()

        # Value (what size covers)
        value_start = reader.position
        self._read_value(reader, prop, size)
        consumed = reader.position - value_start
        if consumed != size:
            raise PropertyFormatError(
                f"Property '{name}' ({type_name}) at offset {start_pos} declared {size} bytes "
                f"but its value used {consumed}")
        return prop

    def _read_value(self, reader: BinaryReader, prop: PropertyTag, size: int) -> None:
        type_name = prop.type_name
        if type_name == 'BoolProperty':
            return
        if type_name in SCALAR_FORMATS:
            prop.value = reader.read_format(SCALAR_FORMATS[type_name])
        elif type_name in STRING_TYPES:
            prop.value = reader.read_fstring()
        elif type_name == 'ByteProperty':
            if _is_plain_byte(prop.enum_type):
                prop.value = reader.read_byte()
            else:
                prop.value = reader.read_fstring()
        elif type_name == 'SoftObjectProperty':
            prop.value = self._read_layout(reader, SOFT_OBJECT_LAYOUT)
        elif type_name == 'StructProperty':
            prop.value = self._read_struct_body(reader, prop.struct_type)
        elif type_name == 'ArrayProperty':
            self._read_array_value(reader, prop, size)
        elif type_name in STRUCTURED_TYPES:
            prop.value = self._read_structured(reader.read_bytes(size), prop)
        else:
            prop.value = reader.read_bytes(size)

    def _read_prototype(self, reader: BinaryReader) -> Tuple[PropertyTag, int]:
        """Read a struct array prototype tag (header only). Returns (tag, element bytes)."""
        name = reader.read_fstring()
        type_name = reader.read_fstring()
        if type_name != 'StructProperty':
            raise PropertyFormatError(
                f"Struct array prototype '{name}' has type {type_name!r}, expected StructProperty")
        size = reader.read_int32()
        array_index = reader.read_int32()
        prototype = PropertyTag(name=name, type_name=type_name, array_index=array_index)
        prototype.struct_type = reader.read_fstring()
        prototype.struct_guid = reader.read_guid()
        if reader.read_byte():
            prototype.property_guid = reader.read_guid()
        return prototype, size

    def _read_array_value(self, reader: BinaryReader, prop: PropertyTag, size: int) -> None:
        """Read ArrayProperty value (inner type already read)."""
        item_type = prop.item_type
        _check_type(item_type)

        if item_type in OPAQUE_TYPES:
            prop.value = reader.read_bytes(size)
            return

        count = reader.read_int32()
        if count < 0:
            raise PropertyFormatError(f"Array '{prop.name}' has negative element count {count}")

        if item_type == 'StructProperty':
            prototype, elements_size = self._read_prototype(reader)
            prop.prototype = prototype
            elements_start = reader.position
            prop.value = [self._read_struct_body(reader, prototype.struct_type) for _ in range(count)]
            if reader.position - elements_start != elements_size:
                raise PropertyFormatError(
                    f"Array '{prop.name}' prototype declared {elements_size} element bytes, "
                    f"read {reader.position - elements_start}")
        elif item_type == 'ByteProperty':
            prop.value = reader.read_bytes(count)
        elif item_type == 'BoolProperty':
            prop.value = [reader.read_byte() != 0 for _ in range(count)]
        elif item_type in SCALAR_FORMATS:
            fmt = SCALAR_FORMATS[item_type]
            prop.value = [reader.read_format(fmt) for _ in range(count)]
        elif item_type in STRING_TYPES:
            prop.value = [reader.read_fstring() for _ in range(count)]
        elif item_type == 'SoftObjectProperty':
            prop.value = [self._read_layout(reader, SOFT_OBJECT_LAYOUT) for _ in range(count)]
        else:
            raise PropertyFormatError(f"Array '{prop.name}' cannot hold {item_type} elements")

    def _read_struct_body(self, reader: BinaryReader, struct_type: Optional[str]) -> Any:
        """Read a struct value: fixed layout for core structs, else a property list."""
        if struct_type == GUID_STRUCT:
            return reader.read_guid().hex()
        if struct_type == TAG_CONTAINER_STRUCT:
            count = reader.read_int32()
            return [reader.read_fstring() for _ in range(count)]
        if struct_type in CORE_STRUCT_LAYOUTS:
            return self._read_layout(reader, CORE_STRUCT_LAYOUTS[struct_type])
        return self._read_properties(reader)

    def _read_layout(self, reader: BinaryReader, layout) -> dict:
        value = {}
        for field_name, fmt in layout:
            if fmt == 's':
                value[field_name] = reader.read_fstring()
            elif fmt in CORE_STRUCT_LAYOUTS:
                value[field_name] = self._read_layout(reader, CORE_STRUCT_LAYOUTS[fmt])
            else:
                value[field_name] = reader.read_format('<' + fmt)
        return value

    # -------------------------------------------------------------------------
    # Text, Map and Set values
    # -------------------------------------------------------------------------

    def _read_structured(self, raw: bytes, prop: PropertyTag) -> Any:
        """
        Decode a Text/Map/Set value, or return `raw` unchanged.

        The decoded value is only used when writing it back gives exactly
        `raw`; unsupported layouts (other text histories, removal lists,
        element types without a fixed encoding) stay raw bytes.
        """
        try:
            reader = BinaryReader(raw)
            if prop.type_name == TEXT_TYPE:
                value = self._read_text(reader)
            elif prop.type_name == MAP_TYPE:
                value = self._read_map(reader, prop.key_type, prop.value_type)
            else:
                value = self._read_set(reader, prop.item_type)
            if reader.remaining:
                return raw
            writer = BinaryWriter()
            self._write_structured(writer, prop, value)
        except PropertyFormatError:
            return raw
        return value if writer.get_bytes() == raw else raw

    def _read_text(self, reader: BinaryReader) -> dict:
        text = {
            'Flags': reader.read_format('<I'),
            'HistoryType': reader.read_format('<b'),
        }
        if text['HistoryType'] == TEXT_HISTORY_NONE:
            if reader.read_format('<I'):
                text[TEXT_INVARIANT_FIELD] = reader.read_fstring()
        elif text['HistoryType'] == TEXT_HISTORY_BASE:
            for field_name in TEXT_BASE_FIELDS:
                text[field_name] = reader.read_fstring()
        else:
            raise PropertyFormatError(f"Unsupported text history type {text['HistoryType']}")
        return text

    def _read_map(self, reader: BinaryReader, key_type: Optional[str], value_type: Optional[str]) -> list:
        """Map value: list of (key, value) pairs."""
        removed = reader.read_int32()
        if removed:
            raise PropertyFormatError(f"Map lists {removed} removed keys")
        count = reader.read_int32()
        entries = []
        for _ in range(count):
            key = self._read_element(reader, key_type)
            entries.append((key, self._read_element(reader, value_type)))
        return entries

    def _read_set(self, reader: BinaryReader, item_type: Optional[str]) -> list:
        removed = reader.read_int32()
        if removed:
            raise PropertyFormatError(f"Set lists {removed} removed elements")
        count = reader.read_int32()
        return [self._read_element(reader, item_type) for _ in range(count)]

    def _read_element(self, reader: BinaryReader, type_name: Optional[str]) -> Any:
        """Read one untagged Map/Set element."""
        if type_name == 'StructProperty':
            return self._read_properties(reader)
        if type_name == 'BoolProperty':
            return reader.read_byte() != 0
        if type_name == 'ByteProperty':
            return reader.read_byte()
        if type_name in SCALAR_FORMATS:
            return reader.read_format(SCALAR_FORMATS[type_name])
        if type_name in STRING_TYPES:
            return reader.read_fstring()
        if type_name == 'SoftObjectProperty':
            return self._read_layout(reader, SOFT_OBJECT_LAYOUT)
        raise PropertyFormatError(f"No fixed element encoding for {type_name}")

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def _write_properties(self, writer: BinaryWriter, properties: List[PropertyTag]) -> int:
        """Write all properties plus 'None' terminator. Returns bytes written."""
        start_pos = writer.position
        for prop in properties:
            self._write_property(writer, prop)
        writer.write_fstring(TERMINATOR)
        return writer.position - start_pos

    def _write_property(self, writer: BinaryWriter, prop: PropertyTag) -> int:
        """Write a single property tag and value. Returns bytes written."""
        _check_type(prop.type_name)
        start_pos = writer.position

        writer.write_fstring(prop.name)
        writer.write_fstring(prop.type_name)

        # Size placeholder, filled in once the value is written
        size_pos = writer.position
        writer.write_int32(0)
        writer.write_int32(prop.array_index)

        # Type header (outside of size)
        if prop.type_name == 'StructProperty':
            writer.write_fstring(prop.struct_type)
            writer.write_guid(prop.struct_guid)
        elif prop.type_name == 'BoolProperty':
            writer.write_byte(1 if prop.value else 0)
        elif prop.type_name in ('ByteProperty', 'EnumProperty'):
            writer.write_fstring(prop.enum_type if prop.enum_type is not None else TERMINATOR)
        elif prop.type_name in ('ArrayProperty', 'SetProperty'):
            writer.write_fstring(prop.item_type)
        elif prop.type_name == 'MapProperty':
            writer.write_fstring(prop.key_type)
            writer.write_fstring(prop.value_type)

        if prop.property_guid is not None:
            writer.write_byte(1)
            writer.write_guid(prop.property_guid)
        else:
            writer.write_byte(0)

        value_start = writer.position
        self._write_value(writer, prop)
        writer.patch_int32(size_pos, writer.position - value_start)

        return writer.position - start_pos

    def _write_value(self, writer: BinaryWriter, prop: PropertyTag) -> None:
        type_name = prop.type_name
        if type_name == 'BoolProperty':
            return
        if type_name in SCALAR_FORMATS:
            writer.write_format(SCALAR_FORMATS[type_name], prop.value)
        elif type_name in STRING_TYPES:
            writer.write_fstring(prop.value)
        elif type_name == 'ByteProperty':
            if _is_plain_byte(prop.enum_type):
                writer.write_byte(prop.value)
            else:
                writer.write_fstring(prop.value)
        elif type_name == 'SoftObjectProperty':
            self._write_layout(writer, SOFT_OBJECT_LAYOUT, prop.value)
        elif type_name == 'StructProperty':
            self._write_struct_body(writer, prop.struct_type, prop.value)
        elif type_name == 'ArrayProperty':
            self._write_array_value(writer, prop)
        elif type_name in STRUCTURED_TYPES and not isinstance(prop.value, (bytes, bytearray)):
            self._write_structured(writer, prop, prop.value)
        else:
            writer.write_bytes(self._require_bytes(prop))

    def _write_array_value(self, writer: BinaryWriter, prop: PropertyTag) -> None:
        """Write ArrayProperty value (header already written)."""
        item_type = prop.item_type
        _check_type(item_type)

        if item_type in OPAQUE_TYPES:
            writer.write_bytes(self._require_bytes(prop))
            return

        values = prop.value if prop.value is not None else []
        writer.write_int32(len(values))

        if item_type == 'StructProperty':
            if prop.prototype is None:
                raise PropertyFormatError(f"Struct array '{prop.name}' has no prototype")
            self._write_struct_elements(writer, prop.prototype, values)
        elif item_type == 'ByteProperty':
            writer.write_bytes(bytes(values))
        elif item_type == 'BoolProperty':
            for item in values:
                writer.write_byte(1 if item else 0)
        elif item_type in SCALAR_FORMATS:
            fmt = SCALAR_FORMATS[item_type]
            for item in values:
                writer.write_format(fmt, item)
        elif item_type in STRING_TYPES:
            for item in values:
                writer.write_fstring(item)
        elif item_type == 'SoftObjectProperty':
            for item in values:
                self._write_layout(writer, SOFT_OBJECT_LAYOUT, item)
        else:
            raise PropertyFormatError(f"Array '{prop.name}' cannot hold {item_type} elements")

    def _write_struct_elements(self, writer: BinaryWriter, prototype: PropertyTag,
                               elements: List[Any]) -> None:
        """Write the prototype tag followed by every element body."""
        writer.write_fstring(prototype.name)
        writer.write_fstring('StructProperty')
        size_pos = writer.position
        writer.write_int32(0)
        writer.write_int32(prototype.array_index)
        writer.write_fstring(prototype.struct_type)
        writer.write_guid(prototype.struct_guid)
        if prototype.property_guid is not None:
            writer.write_byte(1)
            writer.write_guid(prototype.property_guid)
        else:
            writer.write_byte(0)

        elements_start = writer.position
        for element in elements:
            self._write_struct_body(writer, prototype.struct_type, element)
        writer.patch_int32(size_pos, writer.position - elements_start)

    def _write_struct_body(self, writer: BinaryWriter, struct_type: Optional[str], value: Any) -> None:
        if struct_type == GUID_STRUCT:
            try:
                writer.write_guid(bytes.fromhex(value) if value else ZERO_GUID)
            except (TypeError, ValueError) as e:
                raise PropertyFormatError(f"Invalid Guid value {value!r}") from e
        elif struct_type == TAG_CONTAINER_STRUCT:
            tags = value or []
            writer.write_int32(len(tags))
            for tag in tags:
                writer.write_fstring(tag)
        elif struct_type in CORE_STRUCT_LAYOUTS:
            self._write_layout(writer, CORE_STRUCT_LAYOUTS[struct_type], value)
        else:
            if not isinstance(value, list):
                raise PropertyFormatError(
                    f"Struct '{struct_type}' expects a property list, got {type(value).__name__}")
            self._write_properties(writer, value)

    def _write_layout(self, writer: BinaryWriter, layout, value: Optional[dict]) -> None:
        if value is not None and not isinstance(value, dict):
            fields = ', '.join(field_name for field_name, _ in layout)
            raise PropertyFormatError(f"Expected an object with fields {fields}, got {type(value).__name__}")
        v = value or {}
        for field_name, fmt in layout:
            if fmt == 's':
                writer.write_fstring(v.get(field_name))
            elif fmt in CORE_STRUCT_LAYOUTS:
                self._write_layout(writer, CORE_STRUCT_LAYOUTS[fmt], v.get(field_name))
            else:
                writer.write_format('<' + fmt, v.get(field_name, 0))

    def _write_structured(self, writer: BinaryWriter, prop: PropertyTag, value: Any) -> None:
        if prop.type_name == TEXT_TYPE:
            self._write_text(writer, value)
        elif prop.type_name == MAP_TYPE:
            self._write_map(writer, prop.key_type, prop.value_type, value)
        else:
            self._write_set(writer, prop.item_type, value)

    def _write_text(self, writer: BinaryWriter, text: Any) -> None:
        if not isinstance(text, dict):
            raise PropertyFormatError(f"Text value must be an object, got {type(text).__name__}")
        history = text.get('HistoryType', TEXT_HISTORY_NONE)
        writer.write_format('<I', text.get('Flags', 0))
        writer.write_format('<b', history)
        if history == TEXT_HISTORY_NONE:
            if TEXT_INVARIANT_FIELD in text:
                writer.write_format('<I', 1)
                writer.write_fstring(text[TEXT_INVARIANT_FIELD])
            else:
                writer.write_format('<I', 0)
        elif history == TEXT_HISTORY_BASE:
            for field_name in TEXT_BASE_FIELDS:
                writer.write_fstring(text.get(field_name))
        else:
            raise PropertyFormatError(f"Unsupported text history type {history!r}")

    def _write_map(self, writer: BinaryWriter, key_type: Optional[str], value_type: Optional[str],
                   entries: Any) -> None:
        if not isinstance(entries, list):
            raise PropertyFormatError(f"Map value must be a list of entries, got {type(entries).__name__}")
        writer.write_int32(0)
        writer.write_int32(len(entries))
        for entry in entries:
            if not isinstance(entry, (tuple, list)) or len(entry) != 2:
                raise PropertyFormatError(f"Map entry must be a (key, value) pair, got {entry!r}")
            self._write_element(writer, key_type, entry[0])
            self._write_element(writer, value_type, entry[1])

    def _write_set(self, writer: BinaryWriter, item_type: Optional[str], elements: Any) -> None:
        if not isinstance(elements, list):
            raise PropertyFormatError(f"Set value must be a list, got {type(elements).__name__}")
        writer.write_int32(0)
        writer.write_int32(len(elements))
        for element in elements:
            self._write_element(writer, item_type, element)

    def _write_element(self, writer: BinaryWriter, type_name: Optional[str], value: Any) -> None:
        if type_name == 'StructProperty':
            if not isinstance(value, list):
                raise PropertyFormatError(f"Struct element must be a property list, got {type(value).__name__}")
            self._write_properties(writer, value)
        elif type_name == 'BoolProperty':
            writer.write_byte(1 if value else 0)
        elif type_name == 'ByteProperty':
            writer.write_byte(value)
        elif type_name in SCALAR_FORMATS:
            writer.write_format(SCALAR_FORMATS[type_name], value)
        elif type_name in STRING_TYPES:
            writer.write_fstring(value)
        elif type_name == 'SoftObjectProperty':
            self._write_layout(writer, SOFT_OBJECT_LAYOUT, value)
        else:
            raise PropertyFormatError(f"No fixed element encoding for {type_name}")

    @staticmethod
    def _require_bytes(prop: PropertyTag) -> bytes:
        if not isinstance(prop.value, (bytes, bytearray)):
            raise PropertyFormatError(
                f"Property '{prop.name}' ({prop.type_name}) needs raw bytes, "
                f"got {type(prop.value).__name__}")
        return bytes(prop.value)

"""
Java Object Serialization Stream Protocol

Reader and writer for the object-graph wire format produced by
java.io.ObjectOutputStream (stream version 5). Classic maps store their
level as one serialized object of class com.mojang.minecraft.level.Level.

Stream format:
- u16 STREAM_MAGIC (0xACED), u16 STREAM_VERSION (5)
- content items, each introduced by a one-byte type code (TC_*)

Class descriptor (TC_CLASSDESC):
- utf class name
- i64 serialVersionUID
- u8 flags (SC_*)
- u16 field count, then per field:
  - u8 type code ('B','C','D','F','I','J','S','Z' primitives, '[' or 'L' objects)
  - utf field name
  - object fields only: JVM type string, written as a string object
    (TC_STRING, or TC_REFERENCE when the same type string appeared before)
- class annotation (content items up to TC_ENDBLOCKDATA)
- super class descriptor (or TC_NULL)

Object (TC_OBJECT): class descriptor, then the field values of each class
from the top of the hierarchy down, primitives before objects in the order
the descriptor declares them. Classes flagged SC_WRITE_METHOD follow their
fields with optional block data / objects and a TC_ENDBLOCKDATA marker.

Every class descriptor, object, array, string, enum and class written gets
the next handle, starting at BASE_WIRE_HANDLE; TC_REFERENCE points back at
one by handle.

The writer does not reflect on Python classes: the ClassDesc passed in is
exactly what the stream declares, so a descriptor can claim any external
class name and field table.
"""

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Tuple

from ..errors import MapFormatError
from ..utils.binary import BinaryReader, BinaryWriter, BIG_ENDIAN

STREAM_MAGIC = 0xACED
STREAM_VERSION = 5
BASE_WIRE_HANDLE = 0x7E0000

# Type codes
TC_NULL = 0x70
TC_REFERENCE = 0x71
TC_CLASSDESC = 0x72
TC_OBJECT = 0x73
TC_STRING = 0x74
TC_ARRAY = 0x75
TC_CLASS = 0x76
TC_BLOCKDATA = 0x77
TC_ENDBLOCKDATA = 0x78
TC_RESET = 0x79
TC_BLOCKDATALONG = 0x7A
TC_EXCEPTION = 0x7B
TC_LONGSTRING = 0x7C
TC_PROXYCLASSDESC = 0x7D
TC_ENUM = 0x7E

# Class descriptor flags
SC_WRITE_METHOD = 0x01
SC_SERIALIZABLE = 0x02
SC_EXTERNALIZABLE = 0x04
SC_BLOCK_DATA = 0x08
SC_ENUM = 0x10

PRIMITIVE_TYPE_CODES = 'BCDFIJSZ'
OBJECT_TYPE_CODES = '[L'


# =============================================================================
# Modified UTF-8
# =============================================================================

def encode_modified_utf8(text: str) -> bytes:
    """
    Encode a string as Java modified UTF-8.

    NUL is written as two bytes and characters outside the BMP as a
    surrogate pair of three-byte sequences.
    """
    out = bytearray()
    for char in text:
        code = ord(char)
        if 0x01 <= code <= 0x7F:
            out.append(code)
        elif code <= 0x7FF:
            out.append(0xC0 | (code >> 6))
            out.append(0x80 | (code & 0x3F))
        elif code <= 0xFFFF:
            out.append(0xE0 | (code >> 12))
            out.append(0x80 | ((code >> 6) & 0x3F))
            out.append(0x80 | (code & 0x3F))
        else:
            code -= 0x10000
            for unit in (0xD800 | (code >> 10), 0xDC00 | (code & 0x3FF)):
                out.append(0xE0 | (unit >> 12))
                out.append(0x80 | ((unit >> 6) & 0x3F))
                out.append(0x80 | (unit & 0x3F))
    return bytes(out)


def decode_modified_utf8(data: bytes) -> str:
    """Decode Java modified UTF-8 into a Python string."""
    try:
        text = data.replace(b'\xc0\x80', b'\x00').decode('utf-8', errors='surrogatepass')
        # Re-join surrogate pairs into single code points
        return text.encode('utf-16-le', errors='surrogatepass').decode('utf-16-le')
    except UnicodeError as e:
        raise MapFormatError(f"Invalid modified UTF-8 string: {e}") from e


# =============================================================================
# Stream model
# =============================================================================

@dataclass(frozen=True)
class FieldSpec:
    """One entry of a class descriptor's field table."""
    type_code: str
    name: str
    class_name: Optional[str] = None  # JVM type string for '[' and 'L' fields, e.g. "[B"

    def __post_init__(self):
        if self.type_code in PRIMITIVE_TYPE_CODES:
            if self.class_name is not None:
                raise ValueError(f"Primitive field {self.name} cannot carry a type string")
        elif self.type_code in OBJECT_TYPE_CODES:
            if not self.class_name:
                raise ValueError(f"Object field {self.name} needs a type string")
        else:
            raise ValueError(f"Unknown field type code {self.type_code!r}")

    @property
    def is_primitive(self) -> bool:
        return self.type_code in PRIMITIVE_TYPE_CODES


def canonical_field_order(fields: Iterable[FieldSpec]) -> Tuple[FieldSpec, ...]:
    """
    Order fields the way ObjectStreamClass does: primitives first, then
    object fields, each group sorted by name.
    """
    return tuple(sorted(fields, key=lambda f: (not f.is_primitive, f.name)))


@dataclass
class ClassDesc:
    """A class descriptor as it appears on the wire."""
    name: str
    serial_version_uid: int
    flags: int
    fields: Tuple[FieldSpec, ...] = ()
    super_desc: Optional['ClassDesc'] = None
    annotations: List[Any] = field(default_factory=list)
    proxy_interfaces: Optional[Tuple[str, ...]] = None

    def hierarchy(self) -> List['ClassDesc']:
        """Descriptors from the topmost superclass down to this one."""
        chain = []
        desc = self
        while desc is not None:
            chain.append(desc)
            desc = desc.super_desc
        chain.reverse()
        return chain


@dataclass
class JavaObject:
    """A deserialized object: field values per class in its hierarchy."""
    class_desc: ClassDesc
    class_data: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    annotations: List[Any] = field(default_factory=list)

    @property
    def class_name(self) -> str:
        return self.class_desc.name

    def get_field(self, name: str, default: Any = None) -> Any:
        """Look a field up by name, most derived class first."""
        for desc in reversed(self.class_desc.hierarchy()):
            values = self.class_data.get(desc.name, {})
            if name in values:
                return values[name]
        return default


@dataclass
class JavaArray:
    """An array; byte arrays hold ``bytes``, others a list of elements."""
    class_desc: ClassDesc
    values: Any


@dataclass
class JavaEnum:
    class_desc: ClassDesc
    constant: str


@dataclass
class JavaClass:
    class_desc: Optional[ClassDesc]


@dataclass
class BlockData:
    """Raw bytes written in block-data mode (custom writeObject output)."""
    data: bytes


BYTE_ARRAY_CLASS = ClassDesc("[B", -0x530CE807F9F7AB20, SC_SERIALIZABLE)

_NEW_HANDLE = object()


# =============================================================================
# Reader
# =============================================================================

class ObjectStreamReader:
    """
    Parser for Java serialization streams.

    Usage:
        reader = ObjectStreamReader(stream)
        obj = reader.read_object()
        if isinstance(obj, JavaObject):
            width = obj.get_field("width")
    """

    def __init__(self, stream: BinaryIO):
        self.reader = BinaryReader(stream)
        self.handles: List[Any] = []
        self._header_read = False

    def read_header(self):
        """Read and check the stream magic and version."""
        magic = self.reader.read_u16(BIG_ENDIAN)
        if magic != STREAM_MAGIC:
            raise MapFormatError(f"Not an object stream: magic 0x{magic:04X}")
        version = self.reader.read_u16(BIG_ENDIAN)
        if version != STREAM_VERSION:
            raise MapFormatError(f"Unsupported object stream version {version}")
        self._header_read = True

    def read_object(self) -> Any:
        """
        Read the next top-level content item.

        Returns:
            JavaObject, JavaArray, JavaEnum, JavaClass, ClassDesc, str,
            BlockData or None
        """
        if not self._header_read:
            self.read_header()
        return self._read_content(self.reader.read_u8())

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def _reserve_handle(self) -> int:
        self.handles.append(_NEW_HANDLE)
        return len(self.handles) - 1

    def _assign_handle(self, value: Any) -> Any:
        self.handles.append(value)
        return value

    def _read_reference(self) -> Any:
        handle = self.reader.read_i32(BIG_ENDIAN)
        index = handle - BASE_WIRE_HANDLE
        if index < 0 or index >= len(self.handles):
            raise MapFormatError(f"Invalid back-reference handle 0x{handle:X}")
        value = self.handles[index]
        if value is _NEW_HANDLE:
            raise MapFormatError(f"Back-reference 0x{handle:X} to an incomplete item")
        return value

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _read_content(self, tc: int) -> Any:
        if tc == TC_NULL:
            return None
        if tc == TC_REFERENCE:
            return self._read_reference()
        if tc == TC_OBJECT:
            return self._read_new_object()
        if tc == TC_STRING:
            return self._assign_handle(self._read_utf())
        if tc == TC_LONGSTRING:
            return self._assign_handle(self._read_long_utf())
        if tc == TC_ARRAY:
            return self._read_new_array()
        if tc in (TC_CLASSDESC, TC_PROXYCLASSDESC):
            return self._read_new_class_desc(tc)
        if tc == TC_CLASS:
            desc = self._read_class_desc()
            return self._assign_handle(JavaClass(desc))
        if tc == TC_ENUM:
            return self._read_new_enum()
        if tc == TC_BLOCKDATA:
            return BlockData(self.reader.read_exact(self.reader.read_u8()))
        if tc == TC_BLOCKDATALONG:
            return BlockData(self.reader.read_exact(self.reader.read_u32(BIG_ENDIAN)))
        if tc == TC_RESET:
            self.handles.clear()
            return self._read_content(self.reader.read_u8())
        if tc == TC_EXCEPTION:
            raise MapFormatError("Object stream records a serialization exception")
        raise MapFormatError(f"Unknown object stream type code 0x{tc:02X}")

    def _read_utf(self) -> str:
        length = self.reader.read_u16(BIG_ENDIAN)
        return decode_modified_utf8(self.reader.read_exact(length))

    def _read_long_utf(self) -> str:
        length = self.reader.read_uint(8, BIG_ENDIAN)
        return decode_modified_utf8(self.reader.read_exact(length))

    def _read_annotations(self) -> List[Any]:
        """Read content items up to TC_ENDBLOCKDATA."""
        items = []
        while True:
            tc = self.reader.read_u8()
            if tc == TC_ENDBLOCKDATA:
                return items
            items.append(self._read_content(tc))

    def _read_class_desc(self) -> Optional[ClassDesc]:
        tc = self.reader.read_u8()
        if tc == TC_NULL:
            return None
        if tc == TC_REFERENCE:
            desc = self._read_reference()
            if not isinstance(desc, ClassDesc):
                raise MapFormatError("Back-reference where a class descriptor was expected")
            return desc
        if tc in (TC_CLASSDESC, TC_PROXYCLASSDESC):
            return self._read_new_class_desc(tc)
        raise MapFormatError(f"Expected a class descriptor, got type code 0x{tc:02X}")

    def _read_new_class_desc(self, tc: int) -> ClassDesc:
        index = self._reserve_handle()

        if tc == TC_PROXYCLASSDESC:
            count = self.reader.read_i32(BIG_ENDIAN)
            if count < 0:
                raise MapFormatError(f"Invalid proxy interface count {count}")
            interfaces = tuple(self._read_utf() for _ in range(count))
            desc = ClassDesc(name="<proxy>", serial_version_uid=0,
                             flags=SC_SERIALIZABLE, proxy_interfaces=interfaces)
        else:
            name = self._read_utf()
            suid = self.reader.read_i64(BIG_ENDIAN)
            flags = self.reader.read_u8()
            field_count = self.reader.read_u16(BIG_ENDIAN)
            fields = []
            for _ in range(field_count):
                type_code = chr(self.reader.read_u8())
                field_name = self._read_utf()
                class_name = None
                if type_code in OBJECT_TYPE_CODES:
                    class_name = self._read_content(self.reader.read_u8())
                    if not isinstance(class_name, str) or not class_name:
                        raise MapFormatError(f"Field {field_name} has no type string")
                elif type_code not in PRIMITIVE_TYPE_CODES:
                    raise MapFormatError(
                        f"Field {field_name} has unknown type code {type_code!r}"
                    )
                fields.append(FieldSpec(type_code, field_name, class_name))
            desc = ClassDesc(name=name, serial_version_uid=suid, flags=flags,
                             fields=tuple(fields))

        self.handles[index] = desc
        desc.annotations = self._read_annotations()
        desc.super_desc = self._read_class_desc()
        return desc

    def _read_new_object(self) -> JavaObject:
        desc = self._read_class_desc()
        if desc is None:
            raise MapFormatError("Object without a class descriptor")
        obj = self._assign_handle(JavaObject(desc))

        for class_desc in desc.hierarchy():
            if class_desc.flags & SC_EXTERNALIZABLE:
                if not class_desc.flags & SC_BLOCK_DATA:
                    raise MapFormatError(
                        f"Externalizable class {class_desc.name} written without block data"
                    )
                obj.annotations.extend(self._read_annotations())
                continue

            values = {}
            for spec in class_desc.fields:
                values[spec.name] = self._read_field_value(spec)
            obj.class_data[class_desc.name] = values

            if class_desc.flags & SC_WRITE_METHOD:
                obj.annotations.extend(self._read_annotations())

        return obj

    def _read_field_value(self, spec: FieldSpec) -> Any:
        if spec.is_primitive:
            return self._read_primitive(spec.type_code)
        return self._read_content(self.reader.read_u8())

    def _read_primitive(self, type_code: str) -> Any:
        reader = self.reader
        if type_code == 'B':
            return reader.read_i8()
        if type_code == 'C':
            return chr(reader.read_u16(BIG_ENDIAN))
        if type_code == 'D':
            return reader.read_f64(BIG_ENDIAN)
        if type_code == 'F':
            return reader.read_f32(BIG_ENDIAN)
        if type_code == 'I':
            return reader.read_i32(BIG_ENDIAN)
        if type_code == 'J':
            return reader.read_i64(BIG_ENDIAN)
        if type_code == 'S':
            return reader.read_i16(BIG_ENDIAN)
        if type_code == 'Z':
            return reader.read_u8() != 0
        raise MapFormatError(f"Unknown primitive type code: {type_code!r}")

    def _read_new_array(self) -> JavaArray:
        desc = self._read_class_desc()
        if desc is None or not desc.name.startswith('['):
            raise MapFormatError("Array without an array class descriptor")
        array = self._assign_handle(JavaArray(desc, None))

        length = self.reader.read_i32(BIG_ENDIAN)
        if length < 0:
            raise MapFormatError(f"Negative array length {length}")

        element_code = desc.name[1:2]
        if element_code == 'B':
            array.values = self.reader.read_exact(length)
        elif element_code in PRIMITIVE_TYPE_CODES:
            array.values = [self._read_primitive(element_code) for _ in range(length)]
        elif element_code in OBJECT_TYPE_CODES:
            array.values = [self._read_content(self.reader.read_u8()) for _ in range(length)]
        else:
            raise MapFormatError(f"Unknown array element type in {desc.name!r}")
        return array

    def _read_new_enum(self) -> JavaEnum:
        desc = self._read_class_desc()
        if desc is None:
            raise MapFormatError("Enum without a class descriptor")
        index = self._reserve_handle()
        constant = self._read_content(self.reader.read_u8())
        if not isinstance(constant, str):
            raise MapFormatError("Enum constant name is not a string")
        enum = JavaEnum(desc, constant)
        self.handles[index] = enum
        return enum


# =============================================================================
# Writer
# =============================================================================

class ObjectStreamWriter:
    """
    Emits Java serialization streams from explicit descriptors.

    Class descriptors are written exactly as given, so the declared class
    name, serialVersionUID, flags and field table are whatever the caller
    decides the stream should claim.

    Usage:
        writer = ObjectStreamWriter(stream)
        writer.write_header()
        writer.write_object(JavaObject(desc, {desc.name: {...}}))
    """

    def __init__(self, stream: BinaryIO):
        self.writer = BinaryWriter(stream)
        self._handles: Dict[Any, int] = {}
        self._next_handle = BASE_WIRE_HANDLE

    def write_header(self):
        self.writer.write_u16(STREAM_MAGIC, BIG_ENDIAN)
        self.writer.write_u16(STREAM_VERSION, BIG_ENDIAN)

    def _assign_handle(self, key: Any) -> int:
        handle = self._next_handle
        self._next_handle += 1
        if key is not None:
            self._handles[key] = handle
        return handle

    def _write_reference(self, handle: int):
        self.writer.write_u8(TC_REFERENCE)
        self.writer.write_i32(handle, BIG_ENDIAN)

    def write_object(self, value: Any):
        """
        Write one content item.

        Args:
            value: None, str, JavaObject, JavaArray, JavaEnum or BlockData
        """
        if value is None:
            self.writer.write_u8(TC_NULL)
        elif isinstance(value, str):
            self._write_string(value)
        elif isinstance(value, JavaObject):
            self._write_new_object(value)
        elif isinstance(value, JavaArray):
            self._write_new_array(value)
        elif isinstance(value, JavaEnum):
            self._write_new_enum(value)
        elif isinstance(value, BlockData):
            self._write_block_data(value.data)
        else:
            raise TypeError(f"Cannot serialize {type(value).__name__}")

    def _write_utf(self, text: str):
        data = encode_modified_utf8(text)
        if len(data) > 0xFFFF:
            raise ValueError(f"String too long for a utf field: {len(data)} bytes")
        self.writer.write_u16(len(data), BIG_ENDIAN)
        self.writer.write(data)

    def _write_string(self, text: str):
        data = encode_modified_utf8(text)
        self._assign_handle(None)
        if len(data) <= 0xFFFF:
            self.writer.write_u8(TC_STRING)
            self.writer.write_u16(len(data), BIG_ENDIAN)
        else:
            self.writer.write_u8(TC_LONGSTRING)
            self.writer.write_uint(len(data), 8, BIG_ENDIAN)
        self.writer.write(data)

    def _write_type_string(self, type_string: str):
        # Type strings are interned by the JVM, so repeats become back-references
        key = ('type', type_string)
        if key in self._handles:
            self._write_reference(self._handles[key])
            return
        data = encode_modified_utf8(type_string)
        self._assign_handle(key)
        self.writer.write_u8(TC_STRING)
        self.writer.write_u16(len(data), BIG_ENDIAN)
        self.writer.write(data)

    def _write_block_data(self, data: bytes):
        if len(data) <= 0xFF:
            self.writer.write_u8(TC_BLOCKDATA)
            self.writer.write_u8(len(data))
        else:
            self.writer.write_u8(TC_BLOCKDATALONG)
            self.writer.write_u32(len(data), BIG_ENDIAN)
        self.writer.write(data)

    def write_class_desc(self, desc: Optional[ClassDesc]):
        """
        Write a class descriptor, or a back-reference if it was written before.
        """
        if desc is None:
            self.writer.write_u8(TC_NULL)
            return
        key = ('desc', id(desc))
        if key in self._handles:
            self._write_reference(self._handles[key])
            return
        if desc.proxy_interfaces is not None:
            raise ValueError("Writing proxy class descriptors is not supported")

        self.writer.write_u8(TC_CLASSDESC)
        self._assign_handle(key)
        self._write_utf(desc.name)
        self.writer.write_i64(desc.serial_version_uid, BIG_ENDIAN)
        self.writer.write_u8(desc.flags)
        self.writer.write_u16(len(desc.fields), BIG_ENDIAN)
        for spec in desc.fields:
            self.writer.write_u8(ord(spec.type_code))
            self._write_utf(spec.name)
            if not spec.is_primitive:
                self._write_type_string(spec.class_name)

        for annotation in desc.annotations:
            self.write_object(annotation)
        self.writer.write_u8(TC_ENDBLOCKDATA)
        self.write_class_desc(desc.super_desc)

    def _write_new_object(self, obj: JavaObject):
        key = ('obj', id(obj))
        if key in self._handles:
            self._write_reference(self._handles[key])
            return

        self.writer.write_u8(TC_OBJECT)
        self.write_class_desc(obj.class_desc)
        self._assign_handle(key)

        for class_desc in obj.class_desc.hierarchy():
            if class_desc.flags & SC_EXTERNALIZABLE:
                raise ValueError(f"Writing externalizable class {class_desc.name} is not supported")
            values = obj.class_data.get(class_desc.name, {})
            for spec in class_desc.fields:
                if spec.name not in values:
                    raise ValueError(f"No value for field {class_desc.name}.{spec.name}")
                self._write_field_value(spec, values[spec.name])
            if class_desc.flags & SC_WRITE_METHOD:
                for annotation in obj.annotations:
                    self.write_object(annotation)
                self.writer.write_u8(TC_ENDBLOCKDATA)

    def _write_field_value(self, spec: FieldSpec, value: Any):
        if spec.is_primitive:
            self._write_primitive(spec.type_code, value)
        else:
            self.write_object(value)

    def _write_primitive(self, type_code: str, value: Any):
        writer = self.writer
        if type_code == 'B':
            writer.write_i8(value)
        elif type_code == 'C':
            writer.write_u16(ord(value) if isinstance(value, str) else value, BIG_ENDIAN)
        elif type_code == 'D':
            writer.write_f64(value, BIG_ENDIAN)
        elif type_code == 'F':
            writer.write_f32(value, BIG_ENDIAN)
        elif type_code == 'I':
            writer.write_i32(value, BIG_ENDIAN)
        elif type_code == 'J':
            writer.write_i64(value, BIG_ENDIAN)
        elif type_code == 'S':
            writer.write_i16(value, BIG_ENDIAN)
        elif type_code == 'Z':
            writer.write_u8(1 if value else 0)
        else:
            raise ValueError(f"Unknown primitive type code: {type_code!r}")

    def _write_new_array(self, array: JavaArray):
        key = ('obj', id(array))
        if key in self._handles:
            self._write_reference(self._handles[key])
            return

        self.writer.write_u8(TC_ARRAY)
        self.write_class_desc(array.class_desc)
        self._assign_handle(key)

        element_code = array.class_desc.name[1:2]
        self.writer.write_i32(len(array.values), BIG_ENDIAN)
        if element_code == 'B':
            self.writer.write(bytes(array.values))
        elif element_code in PRIMITIVE_TYPE_CODES:
            for value in array.values:
                self._write_primitive(element_code, value)
        else:
            for value in array.values:
                self.write_object(value)

    def _write_new_enum(self, enum: JavaEnum):
        self.writer.write_u8(TC_ENUM)
        self.write_class_desc(enum.class_desc)
        self._assign_handle(('obj', id(enum)))
        self._write_string(enum.constant)


def read_object_stream(stream: BinaryIO) -> Any:
    """Read the header and first object of a serialization stream."""
    try:
        return ObjectStreamReader(stream).read_object()
    except RecursionError as e:
        raise MapFormatError("Object graph nested too deeply") from e

"""Type metadata for compiled JVM classes.

The verifier and the factory synthesizer only need three facts per type:
its qualified name, whether it is interface-like, and the interfaces it
lists directly. `ClassFileIntrospector` reads those from the class file
header without a JVM; it is bound to one output directory and keeps its
own cache, so a fresh instance per verification gives an isolated view.
"""

from __future__ import annotations

import dataclasses
import struct
from pathlib import Path
from typing import Protocol, runtime_checkable

from .errors import ClassFormatError, TypeNotFoundError
from .models import CompiledUnit
from .sources import collect

CLASS_EXTENSION = ".class"
MAGIC = 0xCAFEBABE

ACC_INTERFACE = 0x0200
ACC_ANNOTATION = 0x2000
ACC_MODULE = 0x8000

# Files javac emits that are not types.
NON_TYPE_STEMS = frozenset({"module-info", "package-info"})

TAG_UTF8 = 1
TAG_CLASS = 7
# Payload size in bytes for every fixed-width constant pool tag.
_FIXED_TAG_SIZES = {
    3: 4,  # Integer
    4: 4,  # Float
    5: 8,  # Long
    6: 8,  # Double
    7: 2,  # Class
    8: 2,  # String
    9: 4,  # Fieldref
    10: 4,  # Methodref
    11: 4,  # InterfaceMethodref
    12: 4,  # NameAndType
    15: 3,  # MethodHandle
    16: 2,  # MethodType
    17: 4,  # Dynamic
    18: 4,  # InvokeDynamic
    19: 2,  # Module
    20: 2,  # Package
}
_WIDE_TAGS = {5, 6}


@runtime_checkable
class TypeMetadataProvider(Protocol):
    def load(self, name: str) -> CompiledUnit:
        """Resolve a dotted type name; raise TypeNotFoundError if absent."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class ClassFileInfo:
    name: str
    access_flags: int
    super_name: str | None
    interfaces: tuple[str, ...]

    @property
    def is_interface(self) -> bool:
        return bool(self.access_flags & ACC_INTERFACE) and not (
            self.access_flags & ACC_MODULE
        )

    @property
    def is_annotation(self) -> bool:
        return bool(self.access_flags & ACC_ANNOTATION)


def internal_to_dotted(name: str) -> str:
    return name.replace("/", ".")


def qualified_name_for(path: Path, root: Path) -> str:
    """Map `root/a/b/C.class` to `a.b.C`."""
    relative = path.relative_to(root)
    stem = relative.with_suffix("")
    return ".".join(stem.parts)


def is_type_file(path: Path) -> bool:
    return path.suffix == CLASS_EXTENSION and path.stem not in NON_TYPE_STEMS


def compiled_type_names(root: Path) -> list[str]:
    """Dotted names of every compiled type under `root`."""
    return [
        qualified_name_for(path, root)
        for path in collect([root], CLASS_EXTENSION)
        if is_type_file(path)
    ]


def decode_modified_utf8(raw: bytes) -> str:
    """
    Decode a CONSTANT_Utf8 payload.

    Class files write NUL as C0 80 and characters outside the BMP as two
    three-byte surrogate halves; both are folded back into plain text.
    """
    try:
        halves = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", "surrogatepass")
        return halves.encode("utf-16", "surrogatepass").decode("utf-16")
    except UnicodeError as error:
        raise ClassFormatError(f"Malformed constant pool string: {error.reason}") from error


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, fmt: str) -> tuple[int, ...]:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise ClassFormatError(
                f"Truncated class file at byte {self.offset}"
            )
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def u2(self) -> int:
        return self.take(">H")[0]

    def skip(self, size: int) -> None:
        if self.offset + size > len(self.data):
            raise ClassFormatError(f"Truncated class file at byte {self.offset}")
        self.offset += size

    def raw(self, size: int) -> bytes:
        start = self.offset
        self.skip(size)
        return self.data[start : self.offset]


def read_class_file(data: bytes) -> ClassFileInfo:
    reader = _Reader(data)
    magic, _minor, _major = reader.take(">IHH")
    if magic != MAGIC:
        raise ClassFormatError(f"Bad magic number 0x{magic:08X}")

    pool_count = reader.u2()
    utf8: dict[int, str] = {}
    class_refs: dict[int, int] = {}
    index = 1
    while index < pool_count:
        (tag,) = reader.take(">B")
        if tag == TAG_UTF8:
            length = reader.u2()
            utf8[index] = decode_modified_utf8(reader.raw(length))
        elif tag == TAG_CLASS:
            class_refs[index] = reader.u2()
        elif tag in _FIXED_TAG_SIZES:
            reader.skip(_FIXED_TAG_SIZES[tag])
        else:
            raise ClassFormatError(f"Unknown constant pool tag {tag} at entry {index}")
        index += 2 if tag in _WIDE_TAGS else 1

    def class_name(pool_index: int) -> str:
        name_index = class_refs.get(pool_index)
        if name_index is None or name_index not in utf8:
            raise ClassFormatError(f"Constant pool entry {pool_index} is not a class")
        return internal_to_dotted(utf8[name_index])

    access_flags, this_index, super_index = reader.take(">HHH")
    interface_count = reader.u2()
    interfaces = tuple(class_name(reader.u2()) for _ in range(interface_count))
    return ClassFileInfo(
        name=class_name(this_index),
        access_flags=access_flags,
        super_name=class_name(super_index) if super_index else None,
        interfaces=interfaces,
    )


class ClassFileIntrospector:
    """TypeMetadataProvider over one directory of compiled classes."""

    def __init__(self, root: Path):
        self.root = root
        self._cache: dict[str, CompiledUnit] = {}

    def path_for(self, name: str) -> Path:
        return self.root.joinpath(*name.split(".")).with_suffix(CLASS_EXTENSION)

    def load(self, name: str) -> CompiledUnit:
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self.path_for(name)
        if not path.is_file():
            raise TypeNotFoundError(name)
        info = read_class_file(path.read_bytes())
        if info.name != name:
            # The file exists but declares another type, as a JVM would refuse it.
            raise TypeNotFoundError(name)

        unit = CompiledUnit(
            name=info.name,
            is_contract=info.is_interface,
            contracts=frozenset(info.interfaces),
        )
        self._cache[name] = unit
        return unit

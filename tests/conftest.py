from __future__ import annotations

import struct
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeAlias

import pytest
from gradebuild.config import BuildSettings
from gradebuild.logging import log_sink

ClassWriter: TypeAlias = Callable[..., Path]


def modified_utf8(text: str) -> bytes:
    """Encode as javac does: UTF-16 code units, each written as UTF-8, NUL as C0 80."""
    units = text.encode("utf-16-be", "surrogatepass")
    return b"".join(
        chr(int.from_bytes(units[offset : offset + 2], "big")).encode("utf-8", "surrogatepass")
        for offset in range(0, len(units), 2)
    ).replace(b"\x00", b"\xc0\x80")


def assemble_class(
    name: str,
    *,
    interface: bool = False,
    interfaces: Iterable[str] = (),
    super_name: str = "java.lang.Object",
    with_wide_constant: bool = True,
) -> bytes:
    """Smallest class file the introspector accepts: header, pool, no members."""
    entries: list[bytes] = []
    next_index = 1

    def add(entry: bytes, slots: int = 1) -> int:
        nonlocal next_index
        index = next_index
        entries.append(entry)
        next_index += slots
        return index

    def utf8(text: str) -> int:
        encoded = modified_utf8(text)
        return add(b"\x01" + struct.pack(">H", len(encoded)) + encoded)

    def class_ref(dotted: str) -> int:
        name_index = utf8(dotted.replace(".", "/"))
        return add(b"\x07" + struct.pack(">H", name_index))

    if with_wide_constant:
        # A Long occupies two pool slots.
        _ = add(b"\x05" + struct.pack(">q", 42), slots=2)
    this_index = class_ref(name)
    super_index = class_ref(super_name)
    interface_indexes = [class_ref(item) for item in interfaces]

    access = 0x0601 if interface else 0x0021
    header = struct.pack(">IHHH", 0xCAFEBABE, 0, 61, next_index)
    body = struct.pack(">HHHH", access, this_index, super_index, len(interface_indexes))
    body += b"".join(struct.pack(">H", index) for index in interface_indexes)
    # fields, methods, attributes
    body += struct.pack(">HHH", 0, 0, 0)
    return header + b"".join(entries) + body


@pytest.fixture
def write_class() -> ClassWriter:
    def write(
        root: Path,
        name: str,
        *,
        interface: bool = False,
        interfaces: Iterable[str] = (),
    ) -> Path:
        path = root.joinpath(*name.split(".")).with_suffix(".class")
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = path.write_bytes(
            assemble_class(name, interface=interface, interfaces=interfaces)
        )
        return path

    return write


@pytest.fixture
def settings(tmp_path: Path) -> BuildSettings:
    return BuildSettings(scratch_root=tmp_path / "scratch")


@pytest.fixture
def captured_logs() -> Iterable[list[dict[str, object]]]:
    records: list[dict[str, object]] = []
    with log_sink(records.append):
        yield records

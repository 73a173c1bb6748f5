"""Pytest configuration and fixtures."""

import io
import struct
import zipfile
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Optional

import pytest

from addin_discoverer.context import DiscoveryContext, Options
from addin_discoverer.inspector.assembly import AssemblyInfo, AssemblyReference
from addin_discoverer.models import AddinMetadata
from addin_discoverer.versioning import SemVersion

NUSPEC_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    <id>{name}</id>
    <version>{version}</version>
    <authors>Jane Doe</authors>
    <description>A test package</description>
    {extra}
    <dependencies>
      <group targetFramework="net6.0">
        {dependencies}
      </group>
    </dependencies>
  </metadata>
</package>
"""


def build_nuspec(
    name: str,
    version: str,
    dependencies: Optional[dict[str, str]] = None,
    extra: str = "",
) -> bytes:
    """Render a minimal nuspec document."""
    rendered = "\n".join(
        f'<dependency id="{dep_id}" version="{dep_version}" />'
        for dep_id, dep_version in (dependencies or {}).items()
    )
    return NUSPEC_TEMPLATE.format(
        name=name, version=version, extra=extra, dependencies=rendered
    ).encode("utf-8")


def build_zip(files: dict[str, bytes]) -> bytes:
    """Build an in-memory zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_nupkg(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory writing a .nupkg file into tmp_path."""

    def factory(
        name: str,
        version: str,
        files: dict[str, bytes],
        dependencies: Optional[dict[str, str]] = None,
        extra: str = "",
    ) -> Path:
        content = {f"{name}.nuspec": build_nuspec(name, version, dependencies, extra)}
        content.update(files)
        path = tmp_path / f"{name}.{version}.nupkg"
        path.write_bytes(build_zip(content))
        return path

    return factory


@pytest.fixture
def fake_reader() -> Callable[..., Callable[[bytes, str], AssemblyInfo]]:
    """Return a factory of assembly readers that do not parse PE files.

    The returned reader answers with a fixed AssemblyInfo for every DLL.
    """

    def factory(
        decorated_methods: Optional[list[str]] = None,
        references: Optional[dict[str, str]] = None,
        is_cake_module: bool = False,
    ) -> Callable[[bytes, str], AssemblyInfo]:
        def reader(data: bytes, path: str = "") -> AssemblyInfo:
            return AssemblyInfo(
                path=path,
                name=Path(path).stem,
                references=[
                    AssemblyReference(ref_name, SemVersion.parse(ref_version))
                    for ref_name, ref_version in (references or {}).items()
                ],
                decorated_methods=list(decorated_methods or []),
                is_cake_module=is_cake_module,
            )

        return reader

    return factory


@pytest.fixture
def sample_addin() -> AddinMetadata:
    """Return a discovered but not yet inspected addin."""
    return AddinMetadata(
        name="Cake.Foo",
        version="1.2.0",
        maintainer="Jane Doe",
        project_url="https://github.com/jane/Cake.Foo",
        nuget_package_url="https://www.nuget.org/packages/Cake.Foo/",
        nuget_package_owners=["jane"],
    )


@pytest.fixture
def options(tmp_path: Path) -> Options:
    """Return run options working in tmp_path, without any delay."""
    return Options(
        temp_folder=tmp_path / "work",
        recipe_check_delay=0,
        rate_limit_default_wait=0,
    )


@pytest.fixture
async def context(options: Options) -> AsyncGenerator[DiscoveryContext, None]:
    """Return a DiscoveryContext, closed after the test."""
    ctx = DiscoveryContext(options)
    yield ctx
    await ctx.close()


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    """Return a factory building in-memory zip archives."""
    return build_zip


CLI_METADATA_SIGNATURE = 0x424A5342
SECTION_RVA = 0x2000
FILE_ALIGNMENT = 0x200


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def _pad4(data: bytes) -> bytes:
    return data + b"\x00" * (_align(len(data), 4) - len(data))


def _compressed(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    if length < 0x4000:
        return struct.pack(">H", 0x8000 | length)
    return struct.pack(">I", 0xC0000000 | length)


def _ser_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return _compressed(len(encoded)) + encoded


def build_assembly(
    name: str = "Cake.Foo",
    references: Optional[dict[str, tuple[int, int, int, int]]] = None,
    methods: Optional[dict[str, bool]] = None,
    category: Optional[str] = None,
    is_cake_module: bool = False,
    embedded_pdb: Optional[bytes] = None,
) -> bytes:
    """Lay out a minimal PE32 .NET library.

    The image declares one static class, e.g. ``Cake.Foo.FooAliases`` for
    Cake.Foo, whose methods carry CakeMethodAliasAttribute when flagged True
    in ``methods``. Method bodies are absent: only the metadata tables, the
    heaps and an optional embedded PDB debug entry are written.
    """
    if references is None:
        references = {"Cake.Core": (3, 0, 0, 0), "System.Runtime": (6, 0, 0, 0)}
    if methods is None:
        methods = {"Foo": True, "Helper": False}

    strings = bytearray(b"\x00")
    string_offsets = {"": 0}
    blobs = bytearray(b"\x00")

    def string(value: str) -> int:
        if value not in string_offsets:
            string_offsets[value] = len(strings)
            strings.extend(value.encode("utf-8") + b"\x00")
        return string_offsets[value]

    def blob(value: bytes) -> int:
        offset = len(blobs)
        blobs.extend(_compressed(len(value)) + value)
        return offset

    annotations = "Cake.Core.Annotations"
    type_refs = [
        ("System", "Object"),
        (annotations, "CakeMethodAliasAttribute"),
        (annotations, "CakeAliasCategoryAttribute"),
        (annotations, "CakeModuleAttribute"),
    ]
    alias_ctor, category_ctor, module_ctor = 1, 2, 3
    string_ctor = blob(b"\x20\x01\x01\x0e")

    tables: dict[int, list[bytes]] = {
        # Module
        0: [struct.pack("<HHHHH", 0, string(f"{name}.dll"), 1, 0, 0)],
        # TypeRef, resolved through the first AssemblyRef
        1: [
            struct.pack("<HHH", (1 << 2) | 2, string(type_name), string(namespace))
            for namespace, type_name in type_refs
        ],
        # TypeDef: <Module>, then the alias class extending System.Object
        2: [
            struct.pack("<IHHHHH", 0, string("<Module>"), 0, 0, 1, 1),
            struct.pack(
                "<IHHHHH",
                0x00100181,
                string(f"{name.split('.')[-1]}Aliases"),
                string(name),
                (1 << 2) | 1,
                1,
                1,
            ),
        ],
        # MethodDef
        6: [
            struct.pack("<IHHHHH", 0, 0, 0x0096, string(method), blob(b"\x00\x00\x01"), 1)
            for method in methods
        ],
        # MemberRef: attribute constructors
        10: [
            struct.pack("<HHH", (2 << 3) | 1, string(".ctor"), blob(b"\x20\x00\x01")),
            struct.pack("<HHH", (3 << 3) | 1, string(".ctor"), string_ctor),
            struct.pack("<HHH", (4 << 3) | 1, string(".ctor"), string_ctor),
        ],
        # Assembly
        32: [struct.pack("<IHHHHIHHH", 0x8004, 1, 2, 3, 0, 0, 0, string(name), 0)],
        # AssemblyRef
        35: [
            struct.pack("<HHHHIHHHH", *version, 0, 0, string(ref_name), 0, 0)
            for ref_name, version in references.items()
        ],
    }

    # CustomAttribute rows as (parent, constructor, value), sorted by parent
    attributes = []
    for index, decorated in enumerate(methods.values(), start=1):
        if decorated:
            attributes.append((index << 5, alias_ctor, b"\x01\x00\x00\x00"))
    if category is not None:
        category_value = b"\x01\x00" + _ser_string(category) + b"\x00\x00"
        attributes.append((2 << 5 | 3, category_ctor, category_value))
    if is_cake_module:
        attributes.append(
            (1 << 5 | 14, module_ctor, b"\x01\x00" + _ser_string(f"{name}.Module") + b"\x00\x00")
        )
    tables[12] = [
        struct.pack("<HHH", parent, (ctor << 3) | 3, blob(value))
        for parent, ctor, value in sorted(attributes)
    ]

    present = sorted(number for number, rows in tables.items() if rows)
    valid = sum(1 << number for number in present)
    table_stream = struct.pack("<IBBBBQQ", 0, 2, 0, 0, 1, valid, 1 << 12)
    table_stream += b"".join(struct.pack("<I", len(tables[number])) for number in present)
    table_stream += b"".join(b"".join(tables[number]) for number in present)

    streams = [
        (b"#~", _pad4(table_stream)),
        (b"#Strings", _pad4(bytes(strings))),
        (b"#US", b"\x00\x00\x00\x00"),
        (b"#GUID", bytes(range(16))),
        (b"#Blob", _pad4(bytes(blobs))),
    ]

    version_string = b"v4.0.30319\x00\x00"
    root = struct.pack("<IHHII", CLI_METADATA_SIGNATURE, 1, 1, 0, len(version_string))
    root += version_string + struct.pack("<HH", 0, len(streams))
    header_size = len(root) + sum(8 + _align(len(n) + 1, 4) for n, _data in streams)

    offset = header_size
    stream_headers = b""
    for stream_name, data in streams:
        stream_headers += struct.pack("<II", offset, len(data))
        padding = _align(len(stream_name) + 1, 4) - len(stream_name)
        stream_headers += stream_name + b"\x00" * padding
        offset += len(data)
    metadata = root + stream_headers + b"".join(data for _n, data in streams)

    # .text: CLI header, metadata, then the optional debug directory and its payload
    metadata_rva = SECTION_RVA + 72
    cli_header = struct.pack(
        "<IHHIIII", 72, 2, 5, metadata_rva, len(metadata), 1, 0
    ) + b"\x00" * 48
    text = cli_header + metadata

    debug_directory = (0, 0)
    if embedded_pdb is not None:
        debug_rva = SECTION_RVA + len(text)
        pdb_rva = debug_rva + 28
        text += struct.pack(
            "<IIHHIIII",
            0,
            0,
            0x0100,
            0x0100,
            17,
            len(embedded_pdb),
            pdb_rva,
            FILE_ALIGNMENT + pdb_rva - SECTION_RVA,
        )
        text += embedded_pdb
        debug_directory = (debug_rva, 28)

    raw_size = _align(len(text), FILE_ALIGNMENT)
    directories = [(0, 0)] * 16
    directories[6] = debug_directory
    directories[14] = (SECTION_RVA, 72)

    headers = b"MZ" + b"\x00" * 58 + struct.pack("<I", 0x80)
    headers += b"\x00" * (0x80 - len(headers))
    headers += b"PE\x00\x00"
    headers += struct.pack("<HHIIIHH", 0x14C, 1, 0, 0, 0, 0xE0, 0x2102)
    headers += struct.pack("<HBBIIIIII", 0x10B, 48, 0, raw_size, 0, 0, 0, SECTION_RVA, 0)
    headers += struct.pack(
        "<IIIHHHHHHIIIIHHIIIIII",
        0x400000,
        SECTION_RVA,
        FILE_ALIGNMENT,
        4, 0, 0, 0, 4, 0,
        0,
        SECTION_RVA + _align(len(text), SECTION_RVA),
        FILE_ALIGNMENT,
        0,
        3,
        0x8540,
        0x100000, 0x1000, 0x100000, 0x1000,
        0,
        16,
    )
    headers += b"".join(struct.pack("<II", rva, size) for rva, size in directories)
    headers += struct.pack(
        "<8sIIIIIIHHI",
        b".text",
        len(text),
        SECTION_RVA,
        raw_size,
        FILE_ALIGNMENT,
        0, 0, 0, 0,
        0x60000020,
    )
    headers += b"\x00" * (FILE_ALIGNMENT - len(headers))

    return headers + text + b"\x00" * (raw_size - len(text))


@pytest.fixture
def make_assembly() -> Callable[..., bytes]:
    """Return a factory building .NET assemblies the metadata reader can parse."""
    return build_assembly

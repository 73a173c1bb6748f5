"""Metadata-only reading of .NET assemblies.

Assemblies are parsed with dnfile, which reads the CLI metadata tables
without loading or running anything. Custom attributes are identified by
the name of their type; their constructors are never invoked, only the
serialized argument blob is decoded where a category name is needed.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Optional

import dnfile
import pefile
from dnfile.mdtable import MethodDefRow

from addin_discoverer import constants
from addin_discoverer.exceptions import InspectionError
from addin_discoverer.versioning import SemVersion

logger = logging.getLogger(__name__)

IMAGE_DEBUG_TYPE_EMBEDDED_PORTABLE_PDB = 17

_ALIAS_ATTRIBUTES = {
    constants.CAKE_METHOD_ALIAS_ATTRIBUTE,
    constants.CAKE_PROPERTY_ALIAS_ATTRIBUTE,
}


@dataclass
class AssemblyReference:
    """An entry of the AssemblyRef table."""

    name: str
    version: SemVersion


@dataclass
class AssemblyInfo:
    """What static inspection learned about one assembly.

    Attributes:
        path: Path of the assembly inside the package.
        name: Assembly name.
        references: Referenced assemblies.
        decorated_methods: "Type.Method" for every method with an alias attribute.
        alias_categories: Categories declared with CakeAliasCategoryAttribute.
        is_cake_module: The assembly carries CakeModuleAttribute.
        embedded_pdb: Raw payload of the EmbeddedPortablePdb debug entry, if any.
    """

    path: str
    name: str = ""
    references: list[AssemblyReference] = field(default_factory=list)
    decorated_methods: list[str] = field(default_factory=list)
    alias_categories: list[str] = field(default_factory=list)
    is_cake_module: bool = False
    embedded_pdb: Optional[bytes] = None

    @property
    def has_cake_markers(self) -> bool:
        return bool(self.decorated_methods) or self.is_cake_module


def _text(value: Any) -> str:
    """Heap values are str in recent dnfile releases and wrappers in others."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return str(value)


def _blob(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raw = getattr(value, "value", None)
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    return bytes(value)


def _table(pe: dnfile.dnPE, name: str) -> list:
    table = getattr(pe.net.mdtables, name, None)
    if table is None:
        return []
    return list(table)


def _attribute_type_name(attribute_row: Any) -> tuple[str, str]:
    """Return (namespace, name) of the type declaring an attribute constructor."""
    constructor = attribute_row.Type.row if attribute_row.Type is not None else None
    if constructor is None:
        return "", ""

    declaring = getattr(constructor, "Class", None)
    declaring_row = declaring.row if declaring is not None else None
    if declaring_row is None:
        return "", ""

    return _text(declaring_row.TypeNamespace), _text(declaring_row.TypeName)


def _decode_compressed_length(data: bytes, position: int) -> tuple[int, int]:
    first = data[position]
    if first & 0x80 == 0:
        return first, position + 1
    if first & 0xC0 == 0x80:
        return ((first & 0x3F) << 8) | data[position + 1], position + 2
    value = ((first & 0x1F) << 24) | (data[position + 1] << 16) | (data[position + 2] << 8) | data[position + 3]
    return value, position + 4


def decode_string_argument(blob: bytes) -> Optional[str]:
    """Decode the first string argument of a serialized custom attribute.

    The blob starts with the 0x0001 prolog followed by a SerString.
    """
    if len(blob) < 3 or blob[0:2] != b"\x01\x00":
        return None
    if blob[2] == 0xFF:
        return None
    length, position = _decode_compressed_length(blob, 2)
    return blob[position:position + length].decode("utf-8", "replace")


def _read_embedded_pdb(pe: dnfile.dnPE) -> Optional[bytes]:
    if not hasattr(pe, "DIRECTORY_ENTRY_DEBUG"):
        pe.parse_data_directories(
            directories=[pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_DEBUG"]]
        )

    for entry in getattr(pe, "DIRECTORY_ENTRY_DEBUG", []):
        if entry.struct.Type == IMAGE_DEBUG_TYPE_EMBEDDED_PORTABLE_PDB:
            return pe.get_data(entry.struct.AddressOfRawData, entry.struct.SizeOfData)
    return None


def read_assembly(data: bytes, path: str = "") -> AssemblyInfo:
    """Statically inspect a .NET assembly.

    Args:
        data: Bytes of the DLL.
        path: Path of the DLL inside its package, kept for reporting.

    Returns:
        The extracted AssemblyInfo.

    Raises:
        InspectionError: If the file is not a .NET assembly.
    """
    try:
        pe = dnfile.dnPE(data=data)
    except pefile.PEFormatError as e:
        raise InspectionError(f"{path or 'Assembly'} is not a valid PE file: {e}") from e

    try:
        if pe.net is None or pe.net.mdtables is None:
            raise InspectionError(f"{path or 'Assembly'} is not a .NET assembly")

        info = AssemblyInfo(path=path)

        assembly_rows = _table(pe, "Assembly")
        if assembly_rows:
            info.name = _text(assembly_rows[0].Name)

        for row in _table(pe, "AssemblyRef"):
            info.references.append(
                AssemblyReference(
                    name=_text(row.Name),
                    version=SemVersion.from_assembly_version(
                        row.MajorVersion, row.MinorVersion, row.BuildNumber, row.RevisionNumber
                    ),
                )
            )

        # MethodDef row index -> declaring type name
        method_owners: dict[int, str] = {}
        for type_row in _table(pe, "TypeDef"):
            type_name = _text(type_row.TypeName)
            namespace = _text(type_row.TypeNamespace)
            full_name = f"{namespace}.{type_name}" if namespace else type_name
            for method_index in type_row.MethodList or []:
                method_owners[method_index.row_index] = full_name

        for attribute in _table(pe, "CustomAttribute"):
            namespace, name = _attribute_type_name(attribute)
            if namespace != constants.CAKE_ANNOTATIONS_NAMESPACE:
                continue

            parent = attribute.Parent
            parent_row = parent.row if parent is not None else None

            if name in _ALIAS_ATTRIBUTES and isinstance(parent_row, MethodDefRow):
                owner = method_owners.get(parent.row_index, "")
                method_name = _text(parent_row.Name)
                info.decorated_methods.append(f"{owner}.{method_name}" if owner else method_name)
            elif name == constants.CAKE_ALIAS_CATEGORY_ATTRIBUTE:
                category = decode_string_argument(_blob(attribute.Value))
                if category and category not in info.alias_categories:
                    info.alias_categories.append(category)
            elif name == constants.CAKE_MODULE_ATTRIBUTE:
                info.is_cake_module = True

        info.embedded_pdb = _read_embedded_pdb(pe)
    except (AttributeError, IndexError, struct.error) as e:
        raise InspectionError(f"Unable to read the metadata of {path or 'assembly'}: {e}") from e
    finally:
        pe.close()

    logger.debug(
        "%s: %d reference(s), %d decorated method(s)",
        path,
        len(info.references),
        len(info.decorated_methods),
    )
    return info

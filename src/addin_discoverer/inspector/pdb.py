"""Portable PDB reading.

Only what is needed to tell whether SourceLink information is present: the
metadata root is walked to find the ``#GUID`` heap, which holds the kinds
of every CustomDebugInformation record.
"""

import struct
import uuid
import zlib

from addin_discoverer.constants import SOURCE_LINK_GUID
from addin_discoverer.exceptions import InspectionError

METADATA_SIGNATURE = 0x424A5342  # "BSJB"
EMBEDDED_PDB_SIGNATURE = b"MPDB"

_SOURCE_LINK_KIND = uuid.UUID(SOURCE_LINK_GUID).bytes_le


def read_stream_headers(metadata: bytes) -> dict[str, tuple[int, int]]:
    """Parse an ECMA-335 metadata root.

    Args:
        metadata: Bytes starting at the metadata root.

    Returns:
        Mapping of stream name to (offset, size), offsets relative to the root.

    Raises:
        InspectionError: If the bytes are not a metadata root.
    """
    if len(metadata) < 16:
        raise InspectionError("Debug information is truncated")

    signature, _major, _minor, _reserved, version_length = struct.unpack_from("<IHHII", metadata, 0)
    if signature != METADATA_SIGNATURE:
        raise InspectionError("Debug information is not a portable PDB")

    streams: dict[str, tuple[int, int]] = {}
    try:
        position = 16 + version_length
        _flags, stream_count = struct.unpack_from("<HH", metadata, position)
        position += 4

        for _ in range(stream_count):
            offset, size = struct.unpack_from("<II", metadata, position)
            position += 8
            end = metadata.index(b"\0", position)
            name = metadata[position:end].decode("ascii")
            # Names are null terminated and padded to a 4 byte boundary
            position = (end + 4) & ~3
            streams[name] = (offset, size)
    except (struct.error, ValueError) as e:
        raise InspectionError(f"Debug information is corrupted: {e}") from e

    return streams


def has_source_link(pdb: bytes) -> bool:
    """Return True when a portable PDB carries a SourceLink record.

    Raises:
        InspectionError: If the bytes are not a portable PDB (Windows PDBs included).
    """
    streams = read_stream_headers(pdb)
    if "#GUID" not in streams:
        return False

    offset, size = streams["#GUID"]
    heap = pdb[offset:offset + size]
    return any(
        heap[index:index + 16] == _SOURCE_LINK_KIND for index in range(0, len(heap) - 15, 16)
    )


def decompress_embedded_pdb(data: bytes) -> bytes:
    """Unpack the payload of an EmbeddedPortablePdb debug directory entry.

    Raises:
        InspectionError: If the payload is not an embedded portable PDB.
    """
    if len(data) < 8:
        raise InspectionError("Embedded debug information is truncated")
    if data[:4] != EMBEDDED_PDB_SIGNATURE:
        raise InspectionError("Embedded debug information has an unexpected signature")

    (expected_size,) = struct.unpack_from("<I", data, 4)
    try:
        pdb = zlib.decompress(data[8:], -zlib.MAX_WBITS)
    except zlib.error as e:
        raise InspectionError(f"Unable to decompress embedded PDB: {e}") from e

    if len(pdb) != expected_size:
        raise InspectionError("Embedded PDB size does not match its header")
    return pdb

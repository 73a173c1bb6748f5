"""Static inspection of NuGet packages and the .NET assemblies they contain."""

from addin_discoverer.inspector.assembly import AssemblyInfo, read_assembly
from addin_discoverer.inspector.package import NupkgReader, inspect_package

__all__ = ["AssemblyInfo", "NupkgReader", "inspect_package", "read_assembly"]

#!/usr/bin/env python3
"""
Converter Errors - Failure taxonomy for the prospect converter
==============================================================

Every failure the splitter, combiner or command line can report derives from
ConverterError. Each error knows the stage it came from and, where available,
the file path or recorder index involved.

| Error                  | Stage            | Raised by              |
|------------------------|------------------|------------------------|
| LoadError              | load             | unpack (reading input) |
| DirectorySetupError    | directory setup  | split                  |
| InfoWriteError         | info write       | split                  |
| InfoReadError          | info read        | combine                |
| DataWriteError         | data write       | split                  |
| DataReadError          | data read        | combine                |
| RecorderWriteError     | recorder write   | split                  |
| RecorderReadError      | recorder read    | combine                |
| SaveWriteError         | save write       | pack (writing output)  |
| MalformedRecorderData  | recorder data    | recorder codec         |

None of these are retried. The operation stops and whatever was already
written stays on disk.
"""

from typing import Optional


class ConverterError(Exception):
    """Base class for all reported conversion failures."""

    stage = "convert"

    def __init__(self, message: str, path: Optional[str] = None,
                 index: Optional[int] = None):
        self.message = message
        self.path = str(path) if path is not None else None
        self.index = index
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.index is not None:
            context.append(f"index {self.index}")
        if self.path is not None:
            context.append(f"'{self.path}'")
        suffix = f" ({', '.join(context)})" if context else ""
        return f"[{self.stage}] {self.message}{suffix}"


class LoadError(ConverterError):
    stage = "load"


class DirectorySetupError(ConverterError):
    stage = "directory setup"


class InfoWriteError(ConverterError):
    stage = "info write"


class InfoReadError(ConverterError):
    stage = "info read"


class MissingInfo(InfoReadError):
    """ProspectInfo.json is absent or is not a usable info object."""


class DataWriteError(ConverterError):
    stage = "data write"


class DataReadError(ConverterError):
    stage = "data read"


class RecorderWriteError(ConverterError):
    stage = "recorder write"


class RecorderReadError(ConverterError):
    stage = "recorder read"


class MalformedRecorderFile(RecorderReadError):
    """A recorder file has no usable "Name" key."""


class SaveWriteError(ConverterError):
    stage = "save write"


class MalformedRecorderData(ConverterError):
    """A recorder blob is truncated or holds an unknown property type."""

    stage = "recorder data"

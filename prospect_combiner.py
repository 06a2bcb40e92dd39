#!/usr/bin/env python3
"""
Prospect Combiner - Pack a parts directory back into a prospect
===============================================================

Reverses prospect_splitter. The recorder container property is never read
from JSON: it is rebuilt here from the fixed type table below, and each
recorder file's properties are encoded back into a BinaryData blob.

Recorder Struct Layout:
----------------------
| Property             | Type                        |
|----------------------|-----------------------------|
| ComponentClassName   | StrProperty                 |
| BinaryData           | ArrayProperty of ByteProperty |

Recorder files are read in a deterministic order: files whose name starts
with a number (index or actor ID) first, by that number; then files with an
"_NNN" prefix (recorders that had no actor ID), by that index; then anything
else, by name.
"""

import json
import logging
import re
from pathlib import Path
from typing import List, Tuple, Union

import recorder_codec
from converter_errors import (
    DataReadError,
    MalformedRecorderData,
    MalformedRecorderFile,
    MissingInfo,
    RecorderReadError,
    SaveWriteError,
)
from property_json import PropertyJsonError, json_to_property
from prospect_save import ProspectFormatError, ProspectInfo, ProspectSave
from prospect_splitter import PROSPECT_DATA_FILE, PROSPECT_INFO_FILE, RECORDERS_DIR
from recorder_codec import Recorder
from ue_properties import PropertyTag


logger = logging.getLogger(__name__)


# =============================================================================
# TYPE TABLE
# =============================================================================

RECORDER_CONTAINER_NAME = 'StateRecorderBlobs'
RECORDER_STRUCT_TYPE = 'StateRecorderBlob'

RECORDER_NAME_PROPERTY = 'ComponentClassName'
RECORDER_DATA_PROPERTY = 'BinaryData'

ARRAY_TYPE = 'ArrayProperty'
STRUCT_TYPE = 'StructProperty'
STRING_TYPE = 'StrProperty'
BYTE_TYPE = 'ByteProperty'

# Leading prefix of a recorder file name: optional "_" then digits
_PREFIX_PATTERN = re.compile(r'^(_?)(\d+)_')

PathLike = Union[str, Path]


# =============================================================================
# JSON READING
# =============================================================================

class _OrderedObject(dict):
    """JSON object that also keeps its raw key/value pairs (duplicates included)."""

    def __init__(self, pairs):
        super().__init__(pairs)
        self.pairs = pairs


def _load_json(path: Path, ordered: bool = False):
    with open(path, 'r', encoding='utf-8') as f:
        if ordered:
            return json.load(f, object_pairs_hook=_OrderedObject)
        return json.load(f)


def read_info(path: Path) -> ProspectInfo:
    """
    Read ProspectInfo.json.

    Raises:
        MissingInfo: The file is absent, unreadable or not an info object
    """
    logger.info("Reading ProspectInfo...")
    try:
        return ProspectInfo.from_json(_load_json(path))
    except (OSError, ValueError) as e:
        raise MissingInfo(f"Error reading ProspectInfo. [{type(e).__name__}] {e}", path=path) from e


def read_data(path: Path) -> List[PropertyTag]:
    """
    Read ProspectData.json: every object in the top-level array, in order.

    Raises:
        DataReadError: The file is absent, not an array, or holds a bad property
    """
    logger.info("Reading ProspectData...")
    try:
        items = _load_json(path)
        if not isinstance(items, list):
            raise PropertyJsonError("ProspectData must be a JSON array")
        return [json_to_property(item) for item in items if isinstance(item, dict)]
    except (OSError, ValueError) as e:
        raise DataReadError(f"Error reading ProspectData. [{type(e).__name__}] {e}", path=path) from e


def read_recorder(path: Path) -> Recorder:
    """
    Read one recorder file.

    Keys are taken in file order: the first "Name" gives the recorder name,
    the "Data" array after it gives the properties, and reading stops there.
    Other keys are ignored. A numeric "Name" is taken as its text form.

    Raises:
        MalformedRecorderFile: No "Name" before "Data" or the end of the object
        RecorderReadError: Unreadable file or invalid JSON/property content
    """
    try:
        document = _load_json(path, ordered=True)
    except (OSError, ValueError) as e:
        raise RecorderReadError(f"Error reading recorder. [{type(e).__name__}] {e}", path=path) from e

    if not isinstance(document, _OrderedObject):
        raise MalformedRecorderFile("Recorder file must hold a JSON object", path=path)

    name = None
    items = []
    for key, value in document.pairs:
        if key == 'Name' and name is None:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            elif not isinstance(value, str):
                raise MalformedRecorderFile("Recorder 'Name' must be a string or a number", path=path)
            name = value
        elif key == 'Data':
            items = value if isinstance(value, list) else []
            break

    if name is None:
        raise MalformedRecorderFile("Recorder file has no 'Name'", path=path)

    try:
        properties = [json_to_property(item) for item in items if isinstance(item, dict)]
    except PropertyJsonError as e:
        raise RecorderReadError(f"Error reading recorder data. {e}", path=path) from e
    return Recorder(name=name, properties=properties)


def recorder_sort_key(path: Path) -> Tuple[int, int, str]:
    match = _PREFIX_PATTERN.match(path.name)
    if match is None:
        return (2, 0, path.name)
    group = 1 if match.group(1) else 0
    return (group, int(match.group(2)), path.name)


def list_recorder_files(recorders_dir: Path) -> List[Path]:
    """
    Regular files in the recorders directory, in recorder order.

    Raises:
        RecorderReadError: The directory cannot be listed
    """
    try:
        files = [p for p in recorders_dir.iterdir() if p.is_file()]
    except OSError as e:
        raise RecorderReadError(f"Error reading directory. {e}", path=recorders_dir) from e
    return sorted(files, key=recorder_sort_key)


# =============================================================================
# GRAPH SYNTHESIS
# =============================================================================

def new_recorder_container() -> PropertyTag:
    """Empty StateRecorderBlobs property; its value is assigned once recorders are read."""
    return PropertyTag(name=RECORDER_CONTAINER_NAME, type_name=ARRAY_TYPE)


def recorder_to_struct(recorder: Recorder) -> List[PropertyTag]:
    """
    Build one StateRecorderBlob struct value for a recorder.

    Raises:
        MalformedRecorderData: The recorder's properties cannot be encoded
    """
    name_property = PropertyTag(
        name=RECORDER_NAME_PROPERTY,
        type_name=STRING_TYPE,
        value=recorder.name,
    )
    data_property = PropertyTag(
        name=RECORDER_DATA_PROPERTY,
        type_name=ARRAY_TYPE,
        item_type=BYTE_TYPE,
        value=recorder_codec.encode(recorder.properties),
    )
    return [name_property, data_property]


def assign_recorders(container: PropertyTag, structs: List[List[PropertyTag]]) -> None:
    """Set the recorder array and the type metadata the binary writer needs."""
    container.item_type = STRUCT_TYPE
    container.prototype = PropertyTag(
        name=container.name,
        type_name=STRUCT_TYPE,
        struct_type=RECORDER_STRUCT_TYPE,
    )
    container.value = structs


# =============================================================================
# COMBINE
# =============================================================================

def combine(parts_dir: PathLike) -> ProspectSave:
    """
    Rebuild a prospect from a parts directory.

    Args:
        parts_dir: Directory written by prospect_splitter.split

    Returns:
        Assembled ProspectSave, ready to be written

    Raises:
        ConverterError subclass naming the stage that failed
    """
    parts_dir = Path(parts_dir)

    prospect = ProspectSave()
    container = new_recorder_container()
    prospect.data.append(container)

    prospect.info = read_info(parts_dir / PROSPECT_INFO_FILE)
    prospect.data.extend(read_data(parts_dir / PROSPECT_DATA_FILE))

    recorder_files = list_recorder_files(parts_dir / RECORDERS_DIR)
    logger.info(f"Reading {len(recorder_files)} Recorders...")

    structs = []
    for path in recorder_files:
        recorder = read_recorder(path)
        try:
            structs.append(recorder_to_struct(recorder))
        except MalformedRecorderData as e:
            raise RecorderReadError(
                f"Error encoding recorder '{recorder.name}'. {e.message}", path=path) from e

    assign_recorders(container, structs)
    return prospect


def save_prospect(graph: ProspectSave, path: PathLike) -> None:
    """
    Write an assembled prospect to disk.

    Raises:
        SaveWriteError: The file cannot be written or the graph cannot be encoded
    """
    logger.info("Creating prospect...")
    try:
        with open(path, 'wb') as f:
            graph.save(f)
    except (OSError, ProspectFormatError, ValueError) as e:
        raise SaveWriteError(f"Error creating prospect. [{type(e).__name__}] {e}", path=path) from e
    logger.info("Done")

#!/usr/bin/env python3
"""
Prospect Splitter - Unpack a prospect into a parts directory
============================================================

Parts Directory Layout:
----------------------
| Path                                  | Contents                          |
|---------------------------------------|-----------------------------------|
| ProspectInfo.json                     | prospect metadata object          |
| ProspectData.json                     | array of properties (data[1:])    |
| Recorders/<prefix>_<name>[_NN].json   | {"Name": ..., "Data": [...]}      |

The recorder container (data[0], StateRecorderBlobs) is not written as-is.
Each of its elements becomes one file in Recorders/ with the element's nested
BinaryData decoded into readable properties.

Recorder file prefix:
- default: zero-padded recorder index (width = digits in the recorder count)
- use_actor_id: IcarusActorGUID zero-padded to 7 digits, or "_" + padded
  index when the recorder has no actor ID

The output directory is deleted and recreated first. Nothing is rolled back
on failure.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import List, Optional, Union

import recorder_codec
from converter_errors import (
    DataWriteError,
    DirectorySetupError,
    InfoWriteError,
    LoadError,
    MalformedRecorderData,
    RecorderWriteError,
)
from property_json import properties_to_json, write_json
from prospect_save import ProspectFormatError, ProspectSave
from recorder_codec import Recorder
from ue_properties import PropertyTag


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

PROSPECT_INFO_FILE = 'ProspectInfo.json'
PROSPECT_DATA_FILE = 'ProspectData.json'
RECORDERS_DIR = 'Recorders'

ACTOR_ID_WIDTH = 7

# Collision suffixes run _00 .. _99
MAX_NAME_COLLISIONS = 100

PathLike = Union[str, Path]


# =============================================================================
# LOADING
# =============================================================================

def load_prospect(path: PathLike) -> ProspectSave:
    """
    Load a prospect container from disk.

    Raises:
        LoadError: The file is missing, unreadable or malformed
    """
    logger.info("Loading prospect...")
    try:
        with open(path, 'rb') as f:
            return ProspectSave.load(f)
    except (OSError, ProspectFormatError) as e:
        raise LoadError(f"Error reading input file. [{type(e).__name__}] {e}", path=path) from e


# =============================================================================
# RECORDER EXTRACTION
# =============================================================================

def recorder_from_struct(element, index: int) -> Recorder:
    """
    Build a Recorder from one StateRecorderBlobs element.

    The first inner property holds the recorder name, the second its
    BinaryData byte array.
    """
    if not isinstance(element, list) or len(element) < 2:
        raise RecorderWriteError("Recorder struct needs a name and a BinaryData property", index=index)

    name = element[0].value
    if not isinstance(name, str):
        raise RecorderWriteError(f"Recorder name property '{element[0].name}' is not a string", index=index)

    blob_property = element[1]
    if blob_property.type_name != 'ArrayProperty' or not isinstance(blob_property.value, bytes):
        raise RecorderWriteError(f"Recorder property '{blob_property.name}' is not a byte array", index=index)

    try:
        properties = recorder_codec.decode(blob_property.value)
    except MalformedRecorderData as e:
        raise RecorderWriteError(f"Recorder '{name}' has malformed data: {e.message}", index=index) from e
    return Recorder(name=name, properties=properties)


def recorder_prefix(index: int, count: int, recorder: Recorder, use_actor_id: bool) -> str:
    """File name prefix for the recorder at `index` of `count`."""
    digit_count = len(str(count))
    padded_index = str(index).zfill(digit_count)
    if not use_actor_id:
        return padded_index

    actor_id = recorder.actor_id
    if actor_id is None:
        logger.debug(f"Recorder at index {index} is missing an {recorder_codec.ACTOR_ID_PROPERTY} property")
        return '_' + padded_index
    return str(actor_id).zfill(ACTOR_ID_WIDTH)


def sanitize_name(name: str) -> str:
    """Reduce a recorder name to a bare file name (text after the last / or \\)."""
    return re.split(r'[\\/]', name)[-1]


def available_recorder_path(recorders_dir: Path, prefix: str, name: str, index: int) -> Path:
    """First free `{prefix}_{name}[_NN].json` path in `recorders_dir`."""
    base = f"{prefix}_{sanitize_name(name)}"
    path = recorders_dir / f"{base}.json"
    counter = 0
    while path.exists():
        if counter >= MAX_NAME_COLLISIONS:
            raise RecorderWriteError(f"Too many recorders named '{base}'", path=path, index=index)
        path = recorders_dir / f"{base}_{counter:02d}.json"
        counter += 1
    return path


# =============================================================================
# SPLIT
# =============================================================================

def split(graph: ProspectSave, output_dir: PathLike, use_actor_id: bool = False) -> List[Path]:
    """
    Split a prospect into a parts directory.

    Args:
        graph: Loaded prospect
        output_dir: Parts directory; deleted and recreated
        use_actor_id: Name recorder files by actor ID instead of index

    Returns:
        Paths of the recorder files written, in recorder order

    Raises:
        ConverterError subclass naming the stage that failed
    """
    output_dir = Path(output_dir)

    _setup_directory(output_dir)
    _write_info(graph, output_dir / PROSPECT_INFO_FILE)

    if len(graph.data) <= 1:
        logger.warning("Prospect is missing data")
        return []

    _write_data(graph.data[1:], output_dir / PROSPECT_DATA_FILE)
    written = _write_recorders(graph.data[0], output_dir / RECORDERS_DIR, use_actor_id)

    logger.info("Done")
    return written


def _setup_directory(output_dir: Path) -> None:
    logger.info("Creating/clearing parts directory...")
    try:
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)
    except OSError as e:
        raise DirectorySetupError(f"Error setting up parts directory. {e}", path=output_dir) from e


def _write_info(graph: ProspectSave, path: Path) -> None:
    logger.info("Writing ProspectInfo...")
    try:
        info = graph.info.to_json() if graph.info is not None else {}
        with open(path, 'w', encoding='utf-8') as f:
            write_json(info, f)
    except (OSError, TypeError, ValueError) as e:
        raise InfoWriteError(f"Error writing ProspectInfo. {e}", path=path) from e


def _write_data(properties: List[PropertyTag], path: Path) -> None:
    logger.info("Writing ProspectData...")
    try:
        with open(path, 'w', encoding='utf-8') as f:
            write_json(properties_to_json(properties), f)
    except (OSError, TypeError, ValueError) as e:
        raise DataWriteError(f"Error writing ProspectData. {e}", path=path) from e


def _write_recorders(container: PropertyTag, recorders_dir: Path, use_actor_id: bool) -> List[Path]:
    if container.type_name != 'ArrayProperty' or not isinstance(container.value, list):
        raise RecorderWriteError(f"'{container.name}' is not a recorder array")

    elements = container.value
    logger.info(f"Writing {len(elements)} Recorders...")

    try:
        recorders_dir.mkdir()
    except OSError as e:
        raise RecorderWriteError(f"Error creating recorders directory. {e}", path=recorders_dir) from e

    written = []
    for index, element in enumerate(elements):
        recorder = recorder_from_struct(element, index)
        prefix = recorder_prefix(index, len(elements), recorder, use_actor_id)
        path = available_recorder_path(recorders_dir, prefix, recorder.name, index)
        _write_recorder_file(recorder, path, index)
        written.append(path)
    return written


def _write_recorder_file(recorder: Recorder, path: Path, index: Optional[int] = None) -> None:
    document = {
        'Name': recorder.name,
        'Data': properties_to_json(recorder.properties),
    }
    try:
        # Exclusive create: an existing file is an error, never overwritten
        with open(path, 'x', encoding='utf-8') as f:
            write_json(document, f)
    except FileExistsError as e:
        raise RecorderWriteError("Recorder file already exists", path=path, index=index) from e
    except (OSError, TypeError, ValueError) as e:
        raise RecorderWriteError(f"Error writing recorder. {e}", path=path, index=index) from e

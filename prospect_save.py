#!/usr/bin/env python3
"""
Icarus Prospect Save Container
==============================

A prospect file is a JSON document holding the prospect metadata and a
compressed UE4 property stream:

    {
      "ProspectInfo": { ... },
      "ProspectBlob": {
        "Hash":        SHA-1 hex digest of the uncompressed stream,
        "DataLength":  uncompressed length,
        "TotalLength": compressed length,
        "BinaryBlob":  base64(zlib(property stream))
      }
    }

Decoded, the property stream is the prospect data: an ordered list of
properties whose first entry is the StateRecorderBlobs array holding one
struct per recorder.
"""

import base64
import binascii
import hashlib
import json
import zlib
from dataclasses import dataclass, field, fields
from typing import Any, BinaryIO, Dict, List, Optional

from ue_properties import PropertyFormatError, PropertySerializer, PropertyTag


# =============================================================================
# ERRORS
# =============================================================================

class ProspectFormatError(ValueError):
    """The prospect container or its metadata is malformed."""


# =============================================================================
# PROSPECT INFO
# =============================================================================

@dataclass
class AssociatedMember:
    AccountName: Optional[str] = None
    CharacterName: Optional[str] = None
    UserID: Optional[str] = None
    ChrSlot: Optional[int] = None
    Experience: Optional[int] = None
    Status: Optional[str] = None
    Settled: Optional[bool] = None
    IsCurrentlyPlaying: Optional[bool] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CustomSetting:
    SettingRowName: Optional[str] = None
    SettingValue: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProspectInfo:
    """Prospect metadata. Unrecognized keys are kept in `extra`."""

    ProspectID: Optional[str] = None
    ClaimedAccountID: Optional[str] = None
    ClaimedAccountCharacter: Optional[int] = None
    ProspectDTKey: Optional[str] = None
    FactionMissionDTKey: Optional[str] = None
    LobbyName: Optional[str] = None
    ExpireTime: Optional[int] = None
    ProspectState: Optional[str] = None
    AssociatedMembers: Optional[List[AssociatedMember]] = None
    Cost: Optional[int] = None
    Reward: Optional[int] = None
    Difficulty: Optional[str] = None
    Insurance: Optional[bool] = None
    NoRespawns: Optional[bool] = None
    ElapsedTime: Optional[int] = None
    SelectedDropPoint: Optional[int] = None
    CustomSettings: Optional[List[CustomSetting]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict:
        """JSON object for this record, null fields omitted."""
        return _record_to_json(self)

    @classmethod
    def from_json(cls, obj: Any) -> 'ProspectInfo':
        """
        Build a ProspectInfo from a parsed JSON object.

        Raises:
            ProspectFormatError: `obj` is not an object or a nested list is malformed
        """
        info = _record_from_json(cls, obj, 'ProspectInfo')
        if info.AssociatedMembers is not None:
            info.AssociatedMembers = _records_from_json(
                AssociatedMember, info.AssociatedMembers, 'AssociatedMembers')
        if info.CustomSettings is not None:
            info.CustomSettings = _records_from_json(
                CustomSetting, info.CustomSettings, 'CustomSettings')
        return info


def _record_to_json(record) -> dict:
    obj = {}
    for f in fields(record):
        if f.name == 'extra':
            continue
        value = getattr(record, f.name)
        if value is None:
            continue
        if isinstance(value, list):
            value = [_record_to_json(item) if hasattr(item, 'extra') else item for item in value]
        obj[f.name] = value
    for key, value in record.extra.items():
        if value is not None:
            obj[key] = value
    return obj


def _record_from_json(cls, obj: Any, what: str):
    if not isinstance(obj, dict):
        raise ProspectFormatError(f"{what} must be a JSON object, got {type(obj).__name__}")
    known = {f.name for f in fields(cls)} - {'extra'}
    kwargs = {key: value for key, value in obj.items() if key in known}
    extra = {key: value for key, value in obj.items() if key not in known}
    return cls(extra=extra, **kwargs)


def _records_from_json(cls, items: Any, what: str) -> list:
    if not isinstance(items, list):
        raise ProspectFormatError(f"{what} must be a JSON array")
    return [_record_from_json(cls, item, f"{what}[{i}]") for i, item in enumerate(items)]


# =============================================================================
# PROSPECT SAVE
# =============================================================================

@dataclass
class ProspectSave:
    """
    A decoded prospect.

    data[0] is always the StateRecorderBlobs container; data[1:] is the bulk
    prospect data in file order.
    """

    info: Optional[ProspectInfo] = None
    data: List[PropertyTag] = field(default_factory=list)

    @classmethod
    def load(cls, stream: BinaryIO) -> 'ProspectSave':
        """
        Read a prospect container.

        Args:
            stream: Binary stream positioned at the start of the file

        Returns:
            ProspectSave with info and decoded data

        Raises:
            ProspectFormatError: Malformed JSON, blob or property stream
        """
        try:
            document = json.load(stream)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProspectFormatError(f"Prospect is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise ProspectFormatError("Prospect root must be a JSON object")
        if 'ProspectInfo' not in document or 'ProspectBlob' not in document:
            raise ProspectFormatError("Prospect is missing ProspectInfo or ProspectBlob")

        info = ProspectInfo.from_json(document['ProspectInfo'])
        data = decode_blob(document['ProspectBlob'])
        try:
            properties = PropertySerializer().deserialize(data)
        except PropertyFormatError as e:
            raise ProspectFormatError(f"Prospect data is malformed: {e}") from e
        return cls(info=info, data=properties)

    def save(self, stream: BinaryIO) -> None:
        """Write this prospect as a container file."""
        data = PropertySerializer().serialize(self.data)
        document = {
            'ProspectInfo': (self.info or ProspectInfo()).to_json(),
            'ProspectBlob': encode_blob(data),
        }
        stream.write(json.dumps(document, indent=2, ensure_ascii=False).encode('utf-8'))


def load_graph(stream: BinaryIO) -> ProspectSave:
    return ProspectSave.load(stream)


def save_graph(graph: ProspectSave, stream: BinaryIO) -> None:
    graph.save(stream)


# =============================================================================
# BLOB ENCODING
# =============================================================================

def encode_blob(data: bytes) -> dict:
    """Compress a property stream into a ProspectBlob object."""
    compressed = zlib.compress(data)
    return {
        'Hash': hashlib.sha1(data).hexdigest(),
        'DataLength': len(data),
        'TotalLength': len(compressed),
        'BinaryBlob': base64.b64encode(compressed).decode('ascii'),
    }


def decode_blob(blob: Any) -> bytes:
    """
    Decompress and verify a ProspectBlob object.

    Raises:
        ProspectFormatError: Bad base64/zlib data, or a length or hash mismatch
    """
    if not isinstance(blob, dict) or not isinstance(blob.get('BinaryBlob'), str):
        raise ProspectFormatError("ProspectBlob must be an object with a BinaryBlob string")

    try:
        compressed = base64.b64decode(blob['BinaryBlob'], validate=True)
        data = zlib.decompress(compressed)
    except (binascii.Error, ValueError, zlib.error) as e:
        raise ProspectFormatError(f"ProspectBlob cannot be decoded: {e}") from e

    expected_total = blob.get('TotalLength')
    if expected_total is not None and expected_total != len(compressed):
        raise ProspectFormatError(
            f"ProspectBlob TotalLength is {expected_total}, compressed data is {len(compressed)} bytes")
    expected_length = blob.get('DataLength')
    if expected_length is not None and expected_length != len(data):
        raise ProspectFormatError(
            f"ProspectBlob DataLength is {expected_length}, decompressed data is {len(data)} bytes")
    expected_hash = blob.get('Hash')
    if expected_hash is not None and str(expected_hash).lower() != hashlib.sha1(data).hexdigest():
        raise ProspectFormatError("ProspectBlob Hash does not match its data")
    return data

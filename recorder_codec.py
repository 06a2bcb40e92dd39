#!/usr/bin/env python3
"""
Recorder Codec
==============

Every element of a prospect's StateRecorderBlobs array is a struct holding
the recorder's component class name and a BinaryData byte array. BinaryData
is itself a self-contained tagged property stream. This module converts that
byte array to an ordered property list and back.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from converter_errors import MalformedRecorderData
from ue_properties import PropertyFormatError, PropertySerializer, PropertyTag, find_property


ACTOR_ID_PROPERTY = 'IcarusActorGUID'

_serializer = PropertySerializer()


@dataclass
class Recorder:
    """One state recorder: its class name and decoded properties."""

    name: str
    properties: List[PropertyTag] = field(default_factory=list)

    @property
    def actor_id(self) -> Optional[int]:
        prop = find_property(self.properties, ACTOR_ID_PROPERTY)
        if prop is None or prop.type_name != 'IntProperty':
            return None
        return prop.value


def decode(blob: bytes) -> List[PropertyTag]:
    """
    Decode a recorder's BinaryData into its property list.

    Raises:
        MalformedRecorderData: The stream is truncated or has an unknown type tag
    """
    try:
        return _serializer.deserialize(bytes(blob))
    except PropertyFormatError as e:
        raise MalformedRecorderData(str(e)) from e


def encode(properties: List[PropertyTag]) -> bytes:
    """
    Encode a property list as recorder BinaryData.

    Raises:
        MalformedRecorderData: A property cannot be encoded
    """
    try:
        return _serializer.serialize(properties)
    except PropertyFormatError as e:
        raise MalformedRecorderData(str(e)) from e

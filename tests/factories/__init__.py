"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation. Factories build plain
dicts in the client's document (camelCase) shape.
"""

from .ticket import TicketCreateFactory, ProjectCreateFactory
from .photo import (
    PhotoReferenceFactory,
    UrlOnlyPhotoFactory,
    LegacyUriPhotoFactory,
    AssetFactory,
)
from .remediation import MeasurementFactory, RoomFactory, RemediationFactory
from .note import NoteFactory

__all__ = [
    "TicketCreateFactory",
    "ProjectCreateFactory",
    # Photos and assets
    "PhotoReferenceFactory",
    "UrlOnlyPhotoFactory",
    "LegacyUriPhotoFactory",
    "AssetFactory",
    # Remediation
    "MeasurementFactory",
    "RoomFactory",
    "RemediationFactory",
    "NoteFactory",
]

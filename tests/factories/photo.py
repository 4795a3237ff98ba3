"""
Photo reference and local asset factories.
"""

import base64
from urllib.parse import quote

import factory
from faker import Faker

fake = Faker()

STORAGE_BASE = "https://firebasestorage.googleapis.com/v0/b/test-bucket/o"


def download_url_for(path: str) -> str:
    return f"{STORAGE_BASE}/{quote(path, safe='')}?alt=media&token={fake.uuid4()}"


class PhotoReferenceFactory(factory.Factory):
    """Photo reference with both ``storagePath`` and ``downloadURL``."""

    class Meta:
        model = dict

    storagePath = factory.Sequence(lambda n: f"projectPhotos/{1700000000000 + n}_photo_{n}.jpg")
    downloadURL = factory.LazyAttribute(lambda obj: download_url_for(obj.storagePath))


class UrlOnlyPhotoFactory(factory.Factory):
    """Photo reference that only carries its download URL."""

    class Meta:
        model = dict

    class Params:
        path = factory.Sequence(lambda n: f"ticketPhotos/{fake.uuid4()}.jpg")

    downloadURL = factory.LazyAttribute(lambda obj: download_url_for(obj.path))


class LegacyUriPhotoFactory(factory.Factory):
    """Older record shape: a bare ``uri``."""

    class Meta:
        model = dict

    class Params:
        path = factory.Sequence(lambda n: f"images/{1700000000000 + n}-photo.jpg")

    uri = factory.LazyAttribute(lambda obj: download_url_for(obj.path))


class AssetFactory(factory.Factory):
    """Device picker asset backed by an inline ``data:`` URI."""

    class Meta:
        model = dict

    class Params:
        content = factory.LazyFunction(lambda: fake.binary(length=64))

    uri = factory.LazyAttribute(
        lambda obj: "data:image/jpeg;base64," + base64.b64encode(obj.content).decode("ascii")
    )
    fileName = factory.Sequence(lambda n: f"IMG_{1000 + n}.jpg")
    mimeType = "image/jpeg"

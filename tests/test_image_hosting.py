from io import BytesIO

import pytest
from botocore.exceptions import ClientError
from werkzeug.datastructures import FileStorage

from honesta.image_hosting import MAX_FILE_SIZE, PRESIGNED_URL_TTL, ImageHost, allowed_file, read_upload
from honesta.imaging import decode_data_url

from .conftest import make_data_url


class FakeS3:
    def __init__(self, error_code=None):
        self.error_code = error_code
        self.uploads = {}

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.error_code:
            raise ClientError({'Error': {'Code': self.error_code, 'Message': 'nope'}}, 'PutObject')
        self.uploads[(bucket, key)] = (fileobj.read(), ExtraArgs)

    def generate_presigned_url(self, operation, Params=None, ExpiresIn=None):
        return f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}?expires={ExpiresIn}"


def test_allowed_file():
    assert allowed_file("photo.JPG")
    assert allowed_file("snap.webp")
    assert not allowed_file("notes.txt")
    assert not allowed_file("no_extension")


def test_read_upload_limits():
    ok = FileStorage(stream=BytesIO(b"abc"), filename="pen.png")
    assert read_upload(ok) == b"abc"

    too_big = FileStorage(stream=BytesIO(b"x" * (MAX_FILE_SIZE + 1)), filename="pen.png")
    with pytest.raises(ValueError, match="too large"):
        read_upload(too_big)

    with pytest.raises(ValueError, match="No image"):
        read_upload(FileStorage(stream=BytesIO(b""), filename=""))


def test_inline_mode_keeps_data_url():
    host = ImageHost()
    data_url = make_data_url((10, 10))
    assert host.mode == 'inline'
    assert host.publish(data_url) == data_url


def test_s3_mode_uploads_and_stores_a_reference():
    s3 = FakeS3()
    host = ImageHost(bucket='honesta-photos', client=s3)
    data_url = make_data_url((10, 10))

    ref = host.publish(data_url, prefix='found-items/public')

    assert ref.startswith("s3://honesta-photos/found-items/public/")
    assert ref.endswith(".jpg")
    [(bucket, key)] = s3.uploads.keys()
    assert ref == f"s3://{bucket}/{key}"
    body, extra = s3.uploads[(bucket, key)]
    assert body == decode_data_url(data_url)
    assert extra == {'ContentType': 'image/jpeg'}


def test_resolve_signs_s3_references_freshly():
    host = ImageHost(bucket='honesta-photos', client=FakeS3())

    url = host.resolve("s3://honesta-photos/found-items/public/abc.jpg")

    assert url == f"https://honesta-photos.s3.amazonaws.com/found-items/public/abc.jpg?expires={PRESIGNED_URL_TTL}"


def test_resolve_passes_inline_images_through():
    host = ImageHost()
    data_url = make_data_url((10, 10))
    assert host.resolve(data_url) == data_url
    assert host.resolve(None) is None


@pytest.mark.parametrize("code, message", [
    ('NoSuchBucket', "does not exist"),
    ('AccessDenied', "Access denied"),
    ('SlowDown', "S3 error: SlowDown"),
])
def test_s3_errors_become_value_errors(code, message):
    host = ImageHost(bucket='honesta-photos', client=FakeS3(error_code=code))
    with pytest.raises(ValueError, match=message):
        host.publish(make_data_url((10, 10)))

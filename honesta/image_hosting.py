import logging
import uuid
from io import BytesIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from .imaging import decode_data_url

logger = logging.getLogger(__name__)

# File upload settings
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
PRESIGNED_URL_TTL = 3600  # 1 hour, re-signed on every read
S3_REF_PREFIX = 's3://'


def allowed_file(filename):
    """Check if file extension is allowed"""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def read_upload(file):
    """Validate an uploaded file and return its bytes"""
    if not file or file.filename == '':
        raise ValueError("No image provided")

    if not allowed_file(file.filename):
        raise ValueError("File type not allowed. Use PNG, JPG, JPEG, GIF, or WEBP.")

    raw = file.read(MAX_FILE_SIZE + 1)
    if len(raw) > MAX_FILE_SIZE:
        raise ValueError("File too large. Maximum size is 5MB.")
    if not raw:
        raise ValueError("Uploaded file is empty")
    return raw


def check_size(raw):
    if len(raw) > MAX_FILE_SIZE:
        raise ValueError("File too large. Maximum size is 5MB.")
    return raw


class ImageHost:
    """
    Decides where processed photos live.

    With an S3 bucket configured the JPEG goes to S3 and the item stores an
    ``s3://bucket/key`` reference, signed into a short-lived URL each time
    the item is served. Without one the data URL is stored inline in the
    shared document.
    """

    def __init__(self, bucket=None, access_key_id=None, secret_access_key=None,
                 region='us-east-1', client=None):
        self.bucket = bucket
        self.region = region
        self._client = client
        self._credentials = (access_key_id, secret_access_key)

    @property
    def enabled(self):
        return bool(self.bucket)

    @property
    def mode(self):
        return 's3' if self.enabled else 'inline'

    @property
    def client(self):
        if self._client is None:
            access_key_id, secret_access_key = self._credentials
            self._client = boto3.client(
                's3',
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=self.region,
            )
        return self._client

    def publish(self, data_url, prefix='found-items'):
        if not self.enabled:
            return data_url

        key = f"{prefix}/{uuid.uuid4()}.jpg"
        try:
            self.client.upload_fileobj(
                BytesIO(decode_data_url(data_url)),
                self.bucket,
                key,
                ExtraArgs={'ContentType': 'image/jpeg'},
            )
        except NoCredentialsError as e:
            logger.error("AWS credentials error: %s", e)
            raise ValueError("AWS credentials not available")
        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error("S3 upload failed - Code: %s, Message: %s", error_code, error_message)

            if error_code == 'NoSuchBucket':
                raise ValueError(f"S3 bucket '{self.bucket}' does not exist")
            elif error_code == 'AccessDenied':
                raise ValueError("Access denied to S3 bucket. Check your AWS permissions")
            else:
                raise ValueError(f"S3 error: {error_code} - {error_message}")
        except BotoCoreError as e:
            logger.error("S3 upload failed: %s", e)
            raise ValueError(f"Failed to upload image to S3: {e}")

        logger.info("Uploaded %s to bucket %s", key, self.bucket)
        return f"{S3_REF_PREFIX}{self.bucket}/{key}"

    def resolve(self, ref):
        """Turn a stored image reference into a URL a browser can load"""
        if not ref or not ref.startswith(S3_REF_PREFIX):
            return ref

        bucket, _, key = ref[len(S3_REF_PREFIX):].partition('/')
        try:
            return self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': bucket, 'Key': key},
                ExpiresIn=PRESIGNED_URL_TTL,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Could not sign %s: %s", ref, e)
            return None

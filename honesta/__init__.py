import logging
import os
import secrets

from flask import Flask
from dotenv import load_dotenv

load_dotenv()  # load values from .env

DEFAULT_BLOB_URL = "https://jsonblob.com/api/jsonBlob/1343135804561825792"


def _load_settings():
    return {
        'SECRET_KEY': os.getenv('SECRET_KEY') or secrets.token_hex(32),
        'MAX_CONTENT_LENGTH': int(os.getenv('MAX_CONTENT_LENGTH', 8 * 1024 * 1024)),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),

        # Shared JSON document acting as the database
        'BLOB_URL': os.getenv('HONESTA_BLOB_URL', DEFAULT_BLOB_URL),
        'CACHE_PATH': os.getenv('HONESTA_CACHE_PATH'),
        'HTTP_TIMEOUT': float(os.getenv('HONESTA_HTTP_TIMEOUT', 10)),

        # Gemini
        'GEMINI_API_KEY': os.getenv('GEMINI_API_KEY') or os.getenv('API_KEY', ''),
        'GEMINI_MODEL': os.getenv('GEMINI_MODEL', 'gemini-3-flash-preview'),

        # Campus accounts
        'STUDENT_EMAIL_DOMAIN': os.getenv('STUDENT_EMAIL_DOMAIN', 'cmrithyderabad.edu.in'),
        'FACULTY_EMAIL_DOMAIN': os.getenv('FACULTY_EMAIL_DOMAIN', 'cmritonline.ac.in'),

        # Ownership claims
        'CLAIM_MAX_ATTEMPTS': int(os.getenv('CLAIM_MAX_ATTEMPTS', 3)),
        'CLAIM_LOCKOUT_SECONDS': int(os.getenv('CLAIM_LOCKOUT_SECONDS', 1800)),

        # Optional S3 image hosting
        'S3_BUCKET_NAME': os.getenv('S3_BUCKET_NAME'),
        'AWS_ACCESS_KEY_ID': os.getenv('AWS_ACCESS_KEY_ID'),
        'AWS_SECRET_ACCESS_KEY': os.getenv('AWS_SECRET_ACCESS_KEY'),
        'AWS_REGION': os.getenv('AWS_REGION', 'us-east-1'),
    }


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(_load_settings())
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    cache_path = app.config['CACHE_PATH'] or os.path.join(app.instance_path, 'honesta_cache.json')

    from .store import CloudStore
    from .verification_service import VerificationService
    from .image_hosting import ImageHost

    app.store = CloudStore(
        api_url=app.config['BLOB_URL'],
        cache_path=cache_path,
        timeout=app.config['HTTP_TIMEOUT'],
    )
    app.assistant = VerificationService(
        api_key=app.config['GEMINI_API_KEY'],
        model=app.config['GEMINI_MODEL'],
    )
    app.image_host = ImageHost(
        bucket=app.config['S3_BUCKET_NAME'],
        access_key_id=app.config['AWS_ACCESS_KEY_ID'],
        secret_access_key=app.config['AWS_SECRET_ACCESS_KEY'],
        region=app.config['AWS_REGION'],
    )

    # Register blueprints
    from .views import views
    from .auth import auth
    app.register_blueprint(views, url_prefix='/')
    app.register_blueprint(auth, url_prefix='/')

    from .errors import register_error_handlers
    register_error_handlers(app)

    return app

import base64
from io import BytesIO

import pytest
from PIL import Image

from honesta import create_app

STUDENT_EMAIL = "22r01a0501@cmrithyderabad.edu.in"
OTHER_STUDENT_EMAIL = "22r01a0502@cmrithyderabad.edu.in"
FACULTY_EMAIL = "j.rao@cmritonline.ac.in"
PASSWORD = "Secret#123"


def make_png(size=(800, 400), color=(30, 60, 200)):
    buffer = BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def make_data_url(size=(800, 400), color=(30, 60, 200)):
    return "data:image/png;base64," + base64.b64encode(make_png(size, color)).decode('ascii')


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'BLOB_URL': '',
        'CACHE_PATH': str(tmp_path / 'cache.json'),
        'GEMINI_API_KEY': '',
        'S3_BUCKET_NAME': None,
    })
    return app


def register(client, email=STUDENT_EMAIL, role='STUDENT', name="Asha Reddy", phone="98765 43210"):
    return client.post('/register', json={
        'fullName': name,
        'phoneNumber': phone,
        'email': email,
        'password': PASSWORD,
        'role': role,
    })


@pytest.fixture
def founder(app):
    client = app.test_client()
    assert register(client).status_code == 201
    return client


@pytest.fixture
def claimant(app):
    client = app.test_client()
    assert register(client, email=OTHER_STUDENT_EMAIL, name="Ravi Kumar", phone="9123456780").status_code == 201
    return client

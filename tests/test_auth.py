from .conftest import FACULTY_EMAIL, PASSWORD, STUDENT_EMAIL, make_data_url, register


def login(client, email=STUDENT_EMAIL, password=PASSWORD, role='STUDENT'):
    return client.post('/login', json={'email': email, 'password': password, 'role': role})


def test_register_student(app):
    client = app.test_client()
    response = register(client, email="22R01A0501@CMRITHYDERABAD.EDU.IN")

    assert response.status_code == 201
    user = response.get_json()['user']
    assert user['id'] == '22R01A0501'
    assert user['email'] == STUDENT_EMAIL
    assert user['phoneNumber'] == '9876543210'
    assert user['role'] == 'STUDENT'
    assert 'password' not in user

    stored = app.store.find_user(STUDENT_EMAIL)
    assert stored['password'] != PASSWORD
    assert stored['password'].startswith('$2')


def test_register_logs_the_user_in(app):
    client = app.test_client()
    register(client)
    assert client.get('/me').get_json()['user']['id'] == '22R01A0501'


def test_register_faculty(app):
    response = register(app.test_client(), email=FACULTY_EMAIL, role='FACULTY')
    assert response.status_code == 201
    assert response.get_json()['user']['id'] == 'J.RAO'


def test_register_rejects_wrong_campus_domain(app):
    client = app.test_client()
    assert register(client, email="someone@gmail.com").status_code == 400
    # Faculty address does not pass as a student one
    response = register(client, email=FACULTY_EMAIL, role='STUDENT')
    assert response.status_code == 400
    assert 'cmrithyderabad.edu.in' in response.get_json()['error']


def test_register_rejects_short_phone(app):
    response = register(app.test_client(), phone="12345")
    assert response.status_code == 400


def test_register_rejects_unknown_role(app):
    assert register(app.test_client(), role='ADMIN').status_code == 400


def test_register_rejects_duplicate_email(app):
    register(app.test_client())
    assert register(app.test_client()).status_code == 409


def test_register_rejects_id_taken_on_the_other_campus_domain(app):
    founder = app.test_client()
    register(founder)
    item_id = founder.post('/api/items', json={
        'mode': 'manual', 'image': make_data_url(), 'questions': ["Colour?"], 'answers': ["red"],
    }).get_json()['id']

    twin = app.test_client()
    response = register(twin, email="22r01a0501@cmritonline.ac.in", role='FACULTY')
    assert response.status_code == 409
    assert 'campus ID' in response.get_json()['error']
    assert app.store.find_user("22r01a0501@cmritonline.ac.in") is None

    assert twin.get('/me').status_code == 401
    assert twin.delete(f'/api/items/{item_id}').status_code == 401
    assert founder.get(f'/api/items/{item_id}').status_code == 200


def test_session_must_match_the_stored_account(app):
    register(app.test_client())
    client = app.test_client()
    with client.session_transaction() as sess:
        sess['user_id'] = '22R01A0501'
        sess['user_email'] = "22r01a0501@cmritonline.ac.in"
    assert client.get('/me').status_code == 401


def test_login(app):
    register(app.test_client())
    client = app.test_client()

    response = login(client, email=STUDENT_EMAIL.upper())
    assert response.status_code == 200
    assert response.get_json()['user']['fullName'] == "Asha Reddy"
    assert client.get('/me').status_code == 200


def test_login_failures(app):
    register(app.test_client())
    client = app.test_client()

    assert login(client, password="wrong").status_code == 401
    assert login(client, role='FACULTY').status_code == 401
    assert login(client, email="nobody@cmrithyderabad.edu.in").status_code == 401
    assert client.get('/me').status_code == 401


def test_logout(app):
    client = app.test_client()
    register(client)
    assert client.post('/logout').status_code == 200
    assert client.get('/me').status_code == 401

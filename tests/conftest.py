# tests/conftest.py

import pytest

from app import create_app
from config import TestingConfig
from models import db


@pytest.fixture()
def app():
    """每個測試一個新的 app + 記憶體資料庫"""
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def register(client):
    """註冊使用者,回傳 (user dict, auth headers)"""
    def _register(username, password='password123', email=None):
        payload = {'username': username, 'password': password}
        if email is not None:
            payload['email'] = email
        resp = client.post('/api/auth/register', json=payload)
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        return body['user'], {'Authorization': f"Bearer {body['token']}"}
    return _register


@pytest.fixture()
def alice(register):
    return register('alice')


@pytest.fixture()
def bob(register):
    return register('bob')


@pytest.fixture()
def carol(register):
    return register('carol')


@pytest.fixture()
def make_team(client):
    def _make_team(headers, name='Core', description='core team'):
        resp = client.post('/api/teams', json={'name': name, 'description': description}, headers=headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()
    return _make_team


@pytest.fixture()
def invite(client):
    def _invite(headers, team_id, username, role=None):
        payload = {'username': username}
        if role is not None:
            payload['role'] = role
        return client.post(f'/api/teams/{team_id}/members', json=payload, headers=headers)
    return _invite


@pytest.fixture()
def make_task(client):
    def _make_task(headers, team_id=None, **fields):
        fields.setdefault('title', 'Write docs')
        url = f'/api/teams/{team_id}/tasks' if team_id else '/api/tasks'
        resp = client.post(url, json=fields, headers=headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()
    return _make_task

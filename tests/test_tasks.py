# tests/test_tasks.py

import pytest

from models import Task


def ids(resp):
    return [t['id'] for t in resp.get_json()]


# ============================================
# 建立任務與預設值
# ============================================

def test_create_personal_task_defaults(client, alice):
    _, headers = alice

    resp = client.post('/api/tasks', json={'title': 'Buy milk'}, headers=headers)

    assert resp.status_code == 201
    task = resp.get_json()
    assert task['status'] == 'todo'
    assert task['assignee'] == 'alice'
    assert task['teamId'] is None
    assert task['team'] is None
    assert task['user']['username'] == 'alice'
    assert task['dueDate'] is None


@pytest.mark.parametrize('status', ['', None])
def test_empty_status_and_assignee_fall_back_to_defaults(client, alice, status):
    _, headers = alice

    resp = client.post(
        '/api/tasks',
        json={'title': 'Buy milk', 'status': status, 'assignee': status},
        headers=headers
    )

    task = resp.get_json()
    assert task['status'] == 'todo'
    assert task['assignee'] == 'alice'


def test_explicit_fields_are_kept(client, alice):
    _, headers = alice

    resp = client.post('/api/tasks', json={
        'title': 'Ship release',
        'description': 'v1.0',
        'status': 'in-progress',
        'assignee': 'Someone Else',
        'dueDate': '2030-01-15T09:30:00'
    }, headers=headers)

    task = resp.get_json()
    assert task['status'] == 'in-progress'
    assert task['assignee'] == 'Someone Else'
    assert task['description'] == 'v1.0'
    assert task['dueDate'] == '2030-01-15T09:30:00'


def test_create_task_requires_title(client, alice):
    _, headers = alice

    resp = client.post('/api/tasks', json={'description': 'no title'}, headers=headers)

    assert resp.status_code == 400
    assert 'title' in resp.get_json()['details']


def test_create_task_ignores_unknown_fields(client, alice):
    _, headers = alice

    resp = client.post('/api/tasks', json={'title': 'x', 'id': 999, 'user': {'id': 5}}, headers=headers)

    assert resp.status_code == 201
    assert resp.get_json()['id'] != 999


def test_create_task_under_team_via_query_param(client, alice, bob, make_team, invite):
    _, alice_headers = alice
    _, bob_headers = bob
    team = make_team(alice_headers)

    resp = client.post(f"/api/tasks?teamId={team['id']}", json={'title': 'Team work'}, headers=bob_headers)
    assert resp.status_code == 403

    invite(alice_headers, team['id'], 'bob')
    resp = client.post(f"/api/tasks?teamId={team['id']}", json={'title': 'Team work'}, headers=bob_headers)
    assert resp.status_code == 201
    task = resp.get_json()
    assert task['teamId'] == team['id']
    assert task['team']['name'] == 'Core'
    assert task['assignee'] == 'bob'

    resp = client.post('/api/tasks?teamId=4242', json={'title': 'Nowhere'}, headers=bob_headers)
    assert resp.status_code == 404


def test_assigned_user_must_be_team_member(client, alice, bob, carol, make_team, invite):
    bob_user, _ = bob
    carol_user, _ = carol
    _, headers = alice
    team = make_team(headers)
    invite(headers, team['id'], 'bob')

    resp = client.post(
        f"/api/teams/{team['id']}/tasks",
        json={'title': 'Review', 'assignedToId': carol_user['id']},
        headers=headers
    )
    assert resp.status_code == 400

    resp = client.post(
        f"/api/teams/{team['id']}/tasks",
        json={'title': 'Review', 'assignedToId': bob_user['id']},
        headers=headers
    )
    assert resp.status_code == 201
    assert resp.get_json()['assignedTo']['username'] == 'bob'

    resp = client.post('/api/tasks', json={'title': 'Review', 'assignedToId': 9999}, headers=headers)
    assert resp.status_code == 404

# ============================================
# 任務可見範圍
# ============================================

@pytest.fixture()
def visibility_setup(alice, bob, register, make_team, invite, make_task):
    _, alice_headers = alice
    _, bob_headers = bob
    _, dave_headers = register('dave')

    team = make_team(alice_headers)
    invite(alice_headers, team['id'], 'bob')
    other_team = make_team(dave_headers, name='Other')

    return {
        'alice': alice_headers,
        'bob': bob_headers,
        'alice_personal': make_task(alice_headers, title='alice personal'),
        'alice_team': make_task(alice_headers, team_id=team['id'], title='alice team'),
        'bob_team': make_task(bob_headers, team_id=team['id'], title='bob team'),
        'bob_personal': make_task(bob_headers, title='bob personal'),
        'dave_other': make_task(dave_headers, team_id=other_team['id'], title='dave other'),
    }


def test_default_mode_lists_created_tasks(client, visibility_setup):
    s = visibility_setup

    resp = client.get('/api/tasks', headers=s['alice'])

    assert resp.status_code == 200
    assert ids(resp) == [s['alice_personal']['id'], s['alice_team']['id']]


def test_personal_mode_lists_only_tasks_without_team(client, visibility_setup):
    s = visibility_setup

    resp = client.get('/api/tasks?mode=personal', headers=s['alice'])

    assert ids(resp) == [s['alice_personal']['id']]


def test_all_mode_adds_team_tasks_without_duplicates(client, visibility_setup):
    s = visibility_setup

    alice_all = ids(client.get('/api/tasks?mode=all', headers=s['alice']))
    bob_all = ids(client.get('/api/tasks?mode=all', headers=s['bob']))

    assert alice_all == [s['alice_personal']['id'], s['alice_team']['id'], s['bob_team']['id']]
    assert len(alice_all) == len(set(alice_all))
    # bob 看得到 alice 的團隊任務,但看不到 alice 的個人任務
    assert sorted(bob_all) == sorted([s['alice_team']['id'], s['bob_team']['id'], s['bob_personal']['id']])
    assert s['dave_other']['id'] not in alice_all + bob_all


def test_invalid_mode_is_rejected(client, alice):
    _, headers = alice

    resp = client.get('/api/tasks?mode=everything', headers=headers)

    assert resp.status_code == 400


def test_user_id_param_must_match_caller(client, alice, bob):
    alice_user, headers = alice
    bob_user, _ = bob

    assert client.get(f"/api/tasks?userId={alice_user['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/tasks?userId={bob_user['id']}", headers=headers).status_code == 403


def test_user_id_param_must_be_an_integer(client, alice):
    _, headers = alice

    resp = client.get('/api/tasks?userId=abc', headers=headers)

    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'userId must be an integer'

# ============================================
# 更新任務
# ============================================

def test_update_overwrites_present_fields_only(client, alice, make_task):
    _, headers = alice
    task = make_task(headers, title='Draft', description='first')

    resp = client.put(f"/api/tasks/{task['id']}", json={'status': 'done', 'title': None}, headers=headers)

    assert resp.status_code == 200
    updated = resp.get_json()
    assert updated['status'] == 'done'
    assert updated['title'] == 'Draft'
    assert updated['description'] == 'first'


def test_update_due_date_set_keep_and_clear(client, alice, make_task):
    _, headers = alice
    task = make_task(headers)
    url = f"/api/tasks/{task['id']}"

    resp = client.put(url, json={'dueDate': '2031-03-01T12:00:00'}, headers=headers)
    assert resp.get_json()['dueDate'] == '2031-03-01T12:00:00'

    # 沒送 dueDate: 保留
    resp = client.put(url, json={'title': 'Renamed'}, headers=headers)
    assert resp.get_json()['dueDate'] == '2031-03-01T12:00:00'

    # 送 null: 清除
    resp = client.put(url, json={'dueDate': None}, headers=headers)
    assert resp.get_json()['dueDate'] is None


def test_update_converts_timezone_aware_due_date_to_utc(client, alice, make_task):
    _, headers = alice
    task = make_task(headers)

    resp = client.put(f"/api/tasks/{task['id']}", json={'dueDate': '2031-03-01T20:00:00+08:00'}, headers=headers)

    assert resp.get_json()['dueDate'] == '2031-03-01T12:00:00'


def test_update_missing_task_is_404(client, alice):
    _, headers = alice

    resp = client.put('/api/tasks/9999', json={'status': 'done'}, headers=headers)

    assert resp.status_code == 404
    assert resp.get_json()['message'] == 'Task not found'

# ============================================
# 刪除任務
# ============================================

def test_delete_task(app, client, alice, make_task):
    _, headers = alice
    task = make_task(headers)

    resp = client.delete(f"/api/tasks/{task['id']}", headers=headers)

    assert resp.status_code == 200
    assert resp.data == b''
    assert ids(client.get('/api/tasks', headers=headers)) == []
    with app.app_context():
        assert Task.query.count() == 0


def test_delete_missing_task_is_a_no_op(client, alice):
    _, headers = alice

    assert client.delete('/api/tasks/9999', headers=headers).status_code == 200


def test_task_endpoints_require_token(client):
    assert client.get('/api/tasks').status_code == 401
    assert client.post('/api/tasks', json={'title': 'x'}).status_code == 401
    assert client.delete('/api/tasks/1').status_code == 401

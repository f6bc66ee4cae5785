"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API and the background training task.
"""

import base64

import pytest

from neuralvis import api_server


@pytest.fixture
def client():
    """Flask test client with empty server state."""
    api_server.active_sessions.clear()
    api_server.training_jobs.clear()
    api_server.app.config['TESTING'] = True
    with api_server.app.test_client() as client:
        yield client
    api_server.active_sessions.clear()
    api_server.training_jobs.clear()


@pytest.fixture
def emitted(monkeypatch):
    """Capture Socket.IO events instead of sending them."""
    events = []
    monkeypatch.setattr(
        api_server.socketio, 'emit',
        lambda event, data=None, **kwargs: events.append((event, data))
    )
    return events


@pytest.fixture
def inline_tasks(monkeypatch):
    """Run background tasks synchronously inside the request."""
    monkeypatch.setattr(
        api_server.socketio, 'start_background_task',
        lambda target, *args, **kwargs: target(*args, **kwargs)
    )


@pytest.fixture
def session_id(client):
    response = client.post('/api/sessions', json={'dataset': 'xor', 'seed': 3})
    assert response.status_code == 201
    return response.get_json()['session_id']


@pytest.mark.unit
class TestSessionEndpoints:
    """Test creating, listing and deleting sessions."""

    def test_status(self, client):
        response = client.get('/api/status')
        assert response.status_code == 200
        assert response.get_json() == {
            'status': 'online',
            'active_sessions': 0,
            'training_jobs': 0
        }

    def test_list_datasets(self, client):
        response = client.get('/api/datasets')
        assert response.status_code == 200
        datasets = {d['name']: d for d in response.get_json()['datasets']}
        assert set(datasets) == {'xor', 'circle', 'spiral'}
        assert datasets['xor']['architecture'] == [2, 8, 8, 1]
        assert datasets['spiral']['examples'] == 400

    def test_create_session(self, client):
        response = client.post('/api/sessions', json={'dataset': 'xor', 'seed': 1})
        assert response.status_code == 201
        body = response.get_json()
        assert body['dataset'] == 'xor'
        assert body['architecture'] == [2, 8, 8, 1]
        assert body['epoch'] == 0
        assert body['error'] is None
        assert body['session_id'] in api_server.active_sessions

    def test_create_session_unknown_dataset(self, client):
        response = client.post('/api/sessions', json={'dataset': 'moons'})
        assert response.status_code == 400
        assert 'xor' in response.get_json()['error']

    def test_create_session_without_body(self, client):
        assert client.post('/api/sessions').status_code == 400

    def test_create_session_non_object_body(self, client):
        response = client.post('/api/sessions', json=[1, 2])
        assert response.status_code == 400
        assert 'JSON object' in response.get_json()['error']

    @pytest.mark.parametrize("seed", [-1, 'abc', 1.5, True])
    def test_create_session_bad_seed(self, client, seed):
        response = client.post('/api/sessions', json={'dataset': 'xor', 'seed': seed})
        assert response.status_code == 400

    def test_same_seed_same_network(self, client):
        ids = [
            client.post('/api/sessions', json={'dataset': 'circle', 'seed': 5}).get_json()['session_id']
            for _ in range(2)
        ]
        first, second = (api_server.active_sessions[i]['session'] for i in ids)
        assert first.dataset.inputs == second.dataset.inputs
        assert first.network.get_params() == second.network.get_params()

    def test_get_and_list_sessions(self, client, session_id):
        assert client.get(f'/api/sessions/{session_id}').status_code == 200
        sessions = client.get('/api/sessions').get_json()['sessions']
        assert [s['session_id'] for s in sessions] == [session_id]

    def test_get_missing_session(self, client):
        assert client.get('/api/sessions/missing').status_code == 404

    def test_delete_session(self, client, session_id):
        response = client.delete(f'/api/sessions/{session_id}')
        assert response.status_code == 200
        assert session_id not in api_server.active_sessions
        assert client.delete(f'/api/sessions/{session_id}').status_code == 404


@pytest.mark.unit
class TestPredictionEndpoints:
    """Test read-only access to a session's network."""

    def test_predict(self, client, session_id):
        response = client.post(f'/api/sessions/{session_id}/predict', json={'input': [0, 1]})
        assert response.status_code == 200
        output = response.get_json()['output']
        assert len(output) == 1
        assert 0.0 < output[0] < 1.0

    def test_predict_wrong_width(self, client, session_id):
        response = client.post(f'/api/sessions/{session_id}/predict', json={'input': [0, 1, 1]})
        assert response.status_code == 400

    def test_predict_missing_input(self, client, session_id):
        response = client.post(f'/api/sessions/{session_id}/predict', json={})
        assert response.status_code == 400

    def test_predict_non_object_body(self, client, session_id):
        response = client.post(f'/api/sessions/{session_id}/predict', json=[0, 1])
        assert response.status_code == 400

    def test_predict_nested_input(self, client, session_id):
        response = client.post(f'/api/sessions/{session_id}/predict', json={'input': [[0], [1]]})
        assert response.status_code == 400

    def test_surface(self, client, session_id):
        response = client.get(f'/api/sessions/{session_id}/surface?resolution=6')
        assert response.status_code == 200
        body = response.get_json()
        assert body['resolution'] == 6
        assert base64.b64decode(body['image_data']).startswith(b'\x89PNG')

    @pytest.mark.parametrize("resolution", ['0', '1000', 'abc'])
    def test_surface_bad_resolution(self, client, session_id, resolution):
        response = client.get(f'/api/sessions/{session_id}/surface?resolution={resolution}')
        assert response.status_code == 400


@pytest.mark.integration
class TestTraining:
    """Test running training cycles through the API."""

    def test_train_runs_cycles_and_emits_updates(self, client, session_id, emitted, inline_tasks):
        response = client.post(
            f'/api/sessions/{session_id}/train',
            json={'cycles': 3, 'epochs_per_cycle': 2}
        )
        assert response.status_code == 202
        job_id = response.get_json()['job_id']

        updates = [data for event, data in emitted if event == 'training_update']
        assert [u['epoch'] for u in updates] == [2, 4, 6]
        assert updates[0]['previous_error'] is None
        assert updates[1]['previous_error'] == updates[0]['error']

        events = [event for event, _ in emitted]
        assert events[-1] == 'training_complete'

        job = client.get(f'/api/training/{job_id}').get_json()
        assert job['status'] == 'completed'
        assert job['cycles_completed'] == 3

        session = client.get(f'/api/sessions/{session_id}').get_json()
        assert session['epoch'] == 6
        assert session['active_job'] is None

    def test_train_defaults_to_dataset_hint(self, client, session_id, emitted, inline_tasks):
        client.post(f'/api/sessions/{session_id}/train', json={'cycles': 1})
        updates = [data for event, data in emitted if event == 'training_update']
        assert updates[0]['epoch'] == 10

    @pytest.mark.parametrize("body", [
        {'cycles': 0},
        {'cycles': 'many'},
        {'epochs_per_cycle': -2},
        [5],
    ])
    def test_train_bad_parameters(self, client, session_id, body):
        response = client.post(f'/api/sessions/{session_id}/train', json=body)
        assert response.status_code == 400

    def test_train_missing_session(self, client):
        assert client.post('/api/sessions/missing/train', json={}).status_code == 404

    def test_one_job_per_session(self, client, session_id, monkeypatch):
        """Test that a second job is refused while the first is pending."""
        monkeypatch.setattr(
            api_server.socketio, 'start_background_task',
            lambda target, *args, **kwargs: None
        )
        assert client.post(f'/api/sessions/{session_id}/train', json={}).status_code == 202
        response = client.post(f'/api/sessions/{session_id}/train', json={})
        assert response.status_code == 409
        assert client.delete(f'/api/sessions/{session_id}').status_code == 409

    def test_stop_between_cycles(self, client, session_id, emitted, monkeypatch):
        """Test that a stop request is honoured before the next cycle."""
        pending = []
        monkeypatch.setattr(
            api_server.socketio, 'start_background_task',
            lambda target, *args: pending.append((target, args))
        )
        client.post(f'/api/sessions/{session_id}/train', json={'cycles': 5})
        assert client.post(f'/api/sessions/{session_id}/stop').status_code == 202

        target, args = pending[0]
        target(*args)

        job_id = args[1]
        assert api_server.training_jobs[job_id]['status'] == 'stopped'
        assert api_server.training_jobs[job_id]['cycles_completed'] == 0
        assert emitted[-1][0] == 'training_complete'
        assert client.post(f'/api/sessions/{session_id}/stop').status_code == 409

    def test_task_failure_reported(self, client, session_id, emitted, monkeypatch):
        session = api_server.active_sessions[session_id]['session']

        def broken(epochs=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(session, 'advance', broken)
        api_server.training_jobs['job'] = {'session_id': session_id, 'status': 'pending'}
        api_server.active_sessions[session_id]['active_job'] = 'job'

        api_server.train_session_task(session_id, 'job', 2, 1)

        assert api_server.training_jobs['job']['status'] == 'failed'
        assert emitted[-1] == ('training_error', {
            'job_id': 'job',
            'session_id': session_id,
            'status': 'failed',
            'error': 'boom'
        })
        assert api_server.active_sessions[session_id]['active_job'] is None

    def test_missing_job(self, client):
        assert client.get('/api/training/unknown').status_code == 404

"""API integration smoke tests using FastAPI TestClient."""

from fastapi.testclient import TestClient
from backend.app.main import app

client = TestClient(app)


def test_run_ok():
	r = client.post('/run', json={'code': 'log("hi")'})
	assert r.status_code == 200
	body = r.json()
	assert body['output'] == 'hi'
	assert body['errors'] is None
	assert isinstance(body['duration_ms'], int)


def test_run_missing_code():
	for payload in ({}, {'code': ''}, {'code': None}):
		r = client.post('/run', json=payload)
		assert r.status_code == 400
		assert r.json() == {'error': 'No code provided.'}


def test_run_without_body():
	r = client.post('/run')
	assert r.status_code == 400
	assert r.json() == {'error': 'No code provided.'}


def test_script_error_is_not_http_error():
	r = client.post('/run', json={'code': 'log("a")\nlog([b])'})
	assert r.status_code == 200
	body = r.json()
	assert body['output'] == 'a\nError: Variable [b] is not defined.'
	assert body['errors']['code'] == 'UNDEFINED_VARIABLE'


def test_health():
	r = client.get('/health')
	assert r.status_code == 200
	assert r.json() == {'status': 'ok'}

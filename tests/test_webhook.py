import pytest

from pollbuddy import app, routes
from pollbuddy.bot import messages
from pollbuddy.routes import SECRET_HEADER

from conftest import FakeTransport

WEBHOOK = '/telegram/webhook'
HEADERS = {SECRET_HEADER: 'test-secret'}


def start_update(chat_id=42):
    return {
        'update_id': 1,
        'message': {'message_id': 1, 'chat': {'id': chat_id}, 'from': {'id': chat_id, 'username': 'ada'},
                    'text': '/start'},
    }


@pytest.fixture
def bot_transport(monkeypatch):
    fake = FakeTransport()
    monkeypatch.setattr(routes.engine, 'transport', fake)
    monkeypatch.setattr(routes, 'transport', fake)
    return fake


@pytest.fixture
def client(app_ctx, bot_transport):
    return app.test_client()


def test_rejects_missing_secret(client, bot_transport):
    response = client.post(WEBHOOK, json=start_update())
    assert response.status_code == 403
    assert bot_transport.sent == []


def test_rejects_wrong_secret(client):
    response = client.post(WEBHOOK, json=start_update(), headers={SECRET_HEADER: 'guess'})
    assert response.status_code == 403


def test_rejects_non_object_body(client):
    response = client.post(WEBHOOK, json=[1, 2, 3], headers=HEADERS)
    assert response.status_code == 400


def test_start_command_is_answered(client, bot_transport):
    response = client.post(WEBHOOK, json=start_update(), headers=HEADERS)
    assert response.status_code == 200
    assert response.get_json() == {'ok': True, 'handled': True}
    assert "Welcome to NACOSPollBuddy, @ada!" in bot_transport.last_to('42')


def test_unsupported_update_is_acknowledged(client, bot_transport):
    response = client.post(WEBHOOK, json={'update_id': 2, 'edited_message': {}}, headers=HEADERS)
    assert response.status_code == 200
    assert response.get_json()['handled'] is False
    assert bot_transport.sent == []


def test_internal_error_sends_generic_failure(client, bot_transport, monkeypatch):
    def boom(event):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(routes.engine, 'handle_event', boom)
    response = client.post(WEBHOOK, json=start_update(77), headers=HEADERS)
    assert response.status_code == 200
    assert bot_transport.last_to('77') == messages.GENERIC_FAILURE


def test_internal_error_with_unreachable_chat(client, bot_transport, monkeypatch):
    monkeypatch.setattr(routes.engine, 'handle_event', lambda event: 1 / 0)
    bot_transport.fail_for.add('78')
    response = client.post(WEBHOOK, json=start_update(78), headers=HEADERS)
    assert response.status_code == 200

import json

import pytest
import requests

from webhook_listener.api import PlatformClient
from webhook_listener.errors import ApiError

from .conftest import make_output


def make_response(status_code=200, body=None, url='https://api.example.test'):
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response._content = b'' if body is None else json.dumps(body).encode()
    return response


class FakeApiSession:
    def __init__(self, *responses, error=None):
        self.headers = {}
        self.responses = list(responses)
        self.error = error
        self.requests = []

    def request(self, method, url, params=None, json=None, timeout=None):
        self.requests.append({'method': method, 'url': url, 'params': params, 'json': json})
        if self.error:
            raise self.error
        return self.responses.pop(0)


def make_client(session, team_id=None):
    return PlatformClient(
        'tok_secret',
        api_url='https://api.example.test/',
        team_id=team_id,
        output=make_output(),
        session=session,
    )


def test_create_webhook():
    session = FakeApiSession(make_response(200, {'id': 'hook_1', 'url': 'https://x.loca.lt'}))
    client = make_client(session)

    webhook = client.create_webhook('https://x.loca.lt', ['deployment.created', 'domain.created'])

    assert webhook['id'] == 'hook_1'
    [sent] = session.requests
    assert sent['method'] == 'POST'
    assert sent['url'] == 'https://api.example.test/v1/webhooks'
    assert sent['json'] == {'url': 'https://x.loca.lt', 'events': ['deployment.created', 'domain.created']}
    assert sent['params'] is None
    assert session.headers['Authorization'] == 'Bearer tok_secret'


def test_team_scope_is_sent_as_query_parameter():
    session = FakeApiSession(make_response(200, {'id': 'hook_1'}))

    make_client(session, team_id='team_42').create_webhook('https://x.loca.lt', ['domain.created'])

    assert session.requests[0]['params'] == {'teamId': 'team_42'}


def test_create_webhook_without_id():
    session = FakeApiSession(make_response(200, {'url': 'https://x.loca.lt'}))

    with pytest.raises(ApiError, match='no id'):
        make_client(session).create_webhook('https://x.loca.lt', ['domain.created'])


def test_delete_webhook():
    session = FakeApiSession(make_response(204))

    make_client(session).delete_webhook('hook_1')

    assert session.requests[0]['method'] == 'DELETE'
    assert session.requests[0]['url'] == 'https://api.example.test/v1/webhooks/hook_1'


def test_error_response_carries_server_message():
    session = FakeApiSession(make_response(403, {'error': {'code': 'forbidden', 'message': 'Not authorized'}}))

    with pytest.raises(ApiError, match='Not authorized') as exc:
        make_client(session).create_webhook('https://x.loca.lt', ['domain.created'])

    assert exc.value.status_code == 403


def test_transport_error():
    session = FakeApiSession(error=requests.ConnectionError('Name or service not known'))

    with pytest.raises(ApiError, match='Name or service not known') as exc:
        make_client(session).delete_webhook('hook_1')

    assert exc.value.status_code is None


def test_scope_for_user():
    session = FakeApiSession(make_response(200, {'user': {'username': 'octo', 'email': 'octo@example.test'}}))

    assert make_client(session).get_scope() == 'octo'
    assert session.requests[0]['url'] == 'https://api.example.test/v2/user'


def test_scope_for_team():
    session = FakeApiSession(make_response(200, {'id': 'team_42', 'slug': 'acme', 'name': 'Acme Inc'}))

    assert make_client(session, team_id='team_42').get_scope() == 'acme'
    assert session.requests[0]['url'] == 'https://api.example.test/v2/teams/team_42'

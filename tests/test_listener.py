import os
import signal
import threading

import pytest

from webhook_listener.errors import ApiError, ListenerCloseError, TunnelError
from webhook_listener.events import ALL_EVENTS
from webhook_listener.listener import SHUTDOWN_SIGNALS, WebhookListener
from webhook_listener.rules import ForwardingRule, RuleMatcher

from .conftest import make_output, stderr_of, stdout_of

PUBLIC_URL = 'https://brave-otter.loca.lt'


class Recorder:
    def __init__(self):
        self.calls = []


class FakeServer:
    def __init__(self, recorder, rules=(), fail_stop=False, on_start=None):
        self.recorder = recorder
        self.matcher = RuleMatcher(rules)
        self.fail_stop = fail_stop
        self.on_start = on_start

    def start(self):
        self.recorder.calls.append(('server.start',))
        if self.on_start:
            self.on_start()
        return ('127.0.0.1', 4567)

    def stop(self):
        self.recorder.calls.append(('server.stop',))
        if self.fail_stop:
            raise ListenerCloseError("socket already closed")


class FakeTunnel:
    def __init__(self, recorder, fail_open=False, fail_close=False):
        self.recorder = recorder
        self.fail_open = fail_open
        self.fail_close = fail_close

    def open(self, port):
        self.recorder.calls.append(('tunnel.open', port))
        if self.fail_open:
            raise TunnelError("npx not found")
        return PUBLIC_URL

    def close(self, url):
        self.recorder.calls.append(('tunnel.close', url))
        if self.fail_close:
            raise TunnelError("process did not exit")


class FakeClient:
    def __init__(self, recorder, fail_create=False, fail_delete=False):
        self.recorder = recorder
        self.fail_create = fail_create
        self.fail_delete = fail_delete

    def create_webhook(self, url, events):
        self.recorder.calls.append(('webhook.create', url, list(events)))
        if self.fail_create:
            raise ApiError("POST /v1/webhooks failed (403): Not authorized", 403)
        return {'id': 'hook_123'}

    def delete_webhook(self, webhook_id):
        self.recorder.calls.append(('webhook.delete', webhook_id))
        if self.fail_delete:
            raise ApiError("DELETE failed (500)", 500)

    def get_scope(self):
        return 'acme'


def make_listener(rules=(), server=None, tunnel=None, client=None, output=None):
    recorder = Recorder()
    listener = WebhookListener(
        server=server or FakeServer(recorder, rules),
        tunnel=tunnel or FakeTunnel(recorder),
        client=client or FakeClient(recorder),
        output=output or make_output(),
    )
    return listener, recorder


def test_start_acquires_in_order():
    listener, recorder = make_listener()

    listener.start()

    assert recorder.calls == [
        ('server.start',),
        ('tunnel.open', 4567),
        ('webhook.create', PUBLIC_URL, ALL_EVENTS),
    ]
    assert listener.port == 4567
    assert listener.tunnel_url == PUBLIC_URL
    assert listener.webhook == {'id': 'hook_123'}


def test_start_reports_scope_and_forwarding_targets():
    output = make_output()
    listener, _ = make_listener(
        rules=[
            ForwardingRule.for_all_events('http://localhost:3000/api/webhook'),
            ForwardingRule('http://localhost:4000', {'domain.created'}),
        ],
        output=output,
    )

    listener.start()

    printed = stdout_of(output)
    assert 'Listening for webhooks on acme' in printed
    assert 'Forwarding webhooks to:' in printed
    assert ' * http://localhost:3000/api/webhook [All Events]' in printed
    assert ' * http://localhost:4000 [domain.created]' in printed


def test_start_without_rules_lists_no_targets():
    output = make_output()
    listener, _ = make_listener(output=output)

    listener.start()

    assert 'Forwarding webhooks to:' not in stdout_of(output)


def test_stop_releases_in_reverse_order():
    listener, recorder = make_listener()
    listener.start()
    recorder.calls.clear()

    listener.stop()

    assert recorder.calls == [
        ('tunnel.close', PUBLIC_URL),
        ('webhook.delete', 'hook_123'),
        ('server.stop',),
    ]
    assert listener.stopped


def test_stop_continues_after_each_failure():
    recorder = Recorder()
    output = make_output()
    listener = WebhookListener(
        server=FakeServer(recorder, fail_stop=True),
        tunnel=FakeTunnel(recorder, fail_close=True),
        client=FakeClient(recorder, fail_delete=True),
        output=output,
    )
    listener.start()
    recorder.calls.clear()

    listener.stop()

    assert [call[0] for call in recorder.calls] == ['tunnel.close', 'webhook.delete', 'server.stop']
    errors = stderr_of(output)
    assert f"Unable to close tunnel at '{PUBLIC_URL}'" in errors
    assert "Unable to cleanup webhook 'hook_123'" in errors
    assert "Unable to stop webhook server" in errors
    # The server counts as stopped even though closing failed
    assert listener.port is None


def test_stop_is_idempotent():
    listener, recorder = make_listener()
    listener.start()
    listener.stop()
    recorder.calls.clear()

    listener.stop()

    assert recorder.calls == []


def test_stop_skips_resources_never_acquired():
    recorder = Recorder()
    listener = WebhookListener(
        server=FakeServer(recorder),
        tunnel=FakeTunnel(recorder),
        client=FakeClient(recorder, fail_create=True),
        output=make_output(),
    )

    with pytest.raises(ApiError):
        listener.start()
    recorder.calls.clear()

    listener.stop()

    assert recorder.calls == [('tunnel.close', PUBLIC_URL), ('server.stop',)]
    assert listener.stopped


def test_run_tears_down_and_reraises_startup_error():
    recorder = Recorder()
    listener = WebhookListener(
        server=FakeServer(recorder),
        tunnel=FakeTunnel(recorder, fail_open=True),
        client=FakeClient(recorder),
        output=make_output(),
    )

    with pytest.raises(TunnelError, match='npx not found'):
        listener.run()

    assert recorder.calls == [('server.start',), ('tunnel.open', 4567), ('server.stop',)]
    assert listener.stopped


def test_run_returns_after_shutdown_request():
    listener, recorder = make_listener()
    timer = threading.Timer(0.2, listener.request_shutdown)
    timer.start()

    listener.run()

    assert recorder.calls[-3:] == [
        ('tunnel.close', PUBLIC_URL),
        ('webhook.delete', 'hook_123'),
        ('server.stop',),
    ]
    assert listener.stopped


@pytest.mark.skipif(not hasattr(signal, 'SIGUSR1'), reason='POSIX signals only')
@pytest.mark.parametrize('signame', ['SIGTERM', 'SIGINT', 'SIGUSR1', 'SIGUSR2'])
def test_each_signal_triggers_a_single_teardown(signame):
    sig = getattr(signal, signame)
    recorder = Recorder()

    def send_signals():
        # Delivered while the handlers are installed; a second one must not
        # start another teardown
        os.kill(os.getpid(), sig)
        os.kill(os.getpid(), signal.SIGTERM)

    listener = WebhookListener(
        server=FakeServer(recorder, on_start=send_signals),
        tunnel=FakeTunnel(recorder),
        client=FakeClient(recorder),
        output=make_output(),
    )

    listener.run()

    names = [call[0] for call in recorder.calls]
    assert names.count('tunnel.close') == 1
    assert names.count('webhook.delete') == 1
    assert names.count('server.stop') == 1
    assert listener.stopped


@pytest.mark.skipif(not hasattr(signal, 'SIGUSR1'), reason='POSIX signals only')
def test_run_restores_signal_handlers():
    previous = {sig: signal.getsignal(sig) for sig in SHUTDOWN_SIGNALS}
    listener, _ = make_listener()
    threading.Timer(0.1, listener.request_shutdown).start()

    listener.run()

    assert {sig: signal.getsignal(sig) for sig in SHUTDOWN_SIGNALS} == previous

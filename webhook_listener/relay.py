"""
Relay server - receives webhooks and fans them out to forwarding targets
"""
import socket
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests
from flask import Flask, Response, request
from rich.markup import escape
from rich.pretty import Pretty
from werkzeug.serving import WSGIRequestHandler, make_server

from .errors import (
    ForwardDeliveryError,
    ListenerBindError,
    ListenerCloseError,
    WebhookListenerError,
)
from .output import Output
from .payload import decode_payload, event_type, read_body
from .rules import ForwardingRule, RuleMatcher

DEFAULT_FORWARD_TIMEOUT = 10.0
DEFAULT_MAX_BODY_SIZE = 1024 * 1024

# Recomputed by requests for each target
SKIPPED_HEADERS = {
    'host',
    'content-length',
    'connection',
    'keep-alive',
    'proxy-connection',
    'transfer-encoding',
    'te',
    'trailer',
    'upgrade',
}


class ServerState(Enum):
    STOPPED = 'stopped'
    STARTING = 'starting'
    LISTENING = 'listening'
    STOPPING = 'stopping'


@dataclass(frozen=True)
class RelayServerConfig:
    """Read-only settings of a relay server."""

    log_payloads: bool = True
    rules: Tuple[ForwardingRule, ...] = field(default_factory=tuple)
    forward_timeout: float = DEFAULT_FORWARD_TIMEOUT
    max_body_size: Optional[int] = DEFAULT_MAX_BODY_SIZE

    def __post_init__(self):
        object.__setattr__(self, 'rules', tuple(self.rules))


def forwarded_headers(headers: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """Inbound headers to replay on every forwarded request."""
    if isinstance(headers, Mapping):
        headers = headers.items()
    return {
        name: value
        for name, value in headers
        if name.lower() not in SKIPPED_HEADERS
    }


class Forwarder:
    """Posts a webhook body to every matched target concurrently.

    Without an injected session every delivery goes out on its own
    `requests.post` call, so cookies set by one target are never replayed
    on a later forward.
    """

    def __init__(
        self,
        output: Output,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_FORWARD_TIMEOUT,
    ):
        self.output = output
        self.session = session
        self.timeout = timeout

    def deliver(self, rule: ForwardingRule, body: bytes, headers: Dict[str, str]) -> None:
        """POST `body` to the rule's URL, raising ForwardDeliveryError on failure."""
        self.output.debug(f"POST {rule.url}")
        post = self.session.post if self.session is not None else requests.post
        try:
            response = post(
                rule.url,
                data=body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ForwardDeliveryError(rule.url, str(e)) from e

    def forward(
        self,
        event: str,
        rules: List[ForwardingRule],
        body: bytes,
        headers: Dict[str, str],
        matcher: RuleMatcher,
    ) -> List[ForwardDeliveryError]:
        """Deliver to all rules and wait for every one of them.

        Returns the failed deliveries; they are reported here and never
        raised, so one bad target cannot affect the others.
        """
        if not rules:
            return []

        failures = []
        with ThreadPoolExecutor(max_workers=len(rules), thread_name_prefix='forward') as pool:
            futures = [(rule, pool.submit(self.deliver, rule, body, headers)) for rule in rules]

            for rule, future in futures:
                try:
                    future.result()
                except ForwardDeliveryError as e:
                    self.output.error(str(e))
                    failures.append(e)
                    continue

                self.output.log(
                    f"Webhook [bold]{escape(event)}[/bold] forwarded to "
                    f"{escape(rule.url)} {escape(f'[{matcher.describe(rule)}]')}"
                )

        return failures


def make_request_handler(output: Output) -> type:
    """Request handler class that routes werkzeug access logs to debug output."""

    class RelayRequestHandler(WSGIRequestHandler):
        def log(self, type: str, message: str, *args: Any) -> None:
            output.debug(f"{self.address_string()} {message % args}")

    return RelayRequestHandler


def create_app(relay: 'RelayServer') -> Flask:
    """Flask app accepting webhook deliveries on any path."""
    app = Flask(__name__)

    @app.route('/', defaults={'path': ''}, methods=['POST'])
    @app.route('/<path:path>', methods=['POST'])
    def webhook(path):
        status = relay.handle(request.stream, request.headers)
        return Response(status=status)

    return app


class RelayServer:
    """HTTP listener that prints and relays incoming webhooks."""

    def __init__(
        self,
        config: RelayServerConfig,
        output: Output,
        session: Optional[requests.Session] = None,
        host: str = '127.0.0.1',
        port: int = 0,
    ):
        self.config = config
        self.output = output
        self.host = host
        self.port = port
        self.matcher = RuleMatcher(config.rules)
        self.forwarder = Forwarder(output, session, config.forward_timeout)
        self.app = create_app(self)
        self.state = ServerState.STOPPED

        self._socket: Optional[socket.socket] = None
        self._server = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self._socket is None:
            return None
        return self._socket.getsockname()[:2]

    @property
    def url(self) -> Optional[str]:
        if self.address is None:
            return None
        host, port = self.address
        return f"http://{host}:{port}"

    def handle(self, stream, headers) -> int:
        """Process one webhook delivery and return the response status.

        Every path through here produces exactly one status: 200 when the body
        was read, decoded and fanned out, 500 otherwise.
        """
        status = 500
        try:
            body = read_body(stream, self.config.max_body_size)
            payload = decode_payload(body)
            event = event_type(payload)

            if self.config.log_payloads:
                self._print_payload(event, payload)

            rules = self.matcher.match(event)
            if rules:
                self.forwarder.forward(event, rules, body, forwarded_headers(headers), self.matcher)

            status = 200
        except WebhookListenerError as e:
            self.output.error(str(e))
        except Exception as e:
            self.output.error(str(e))
            self.output.debug(traceback.format_exc())

        return status

    def _print_payload(self, event: str, payload: Dict[str, Any]) -> None:
        self.output.print(f">>> [bold]{escape(event)}[/bold]")
        self.output.print()
        self.output.print(Pretty(payload, expand_all=True))
        self.output.print()

    def start(self) -> Tuple[str, int]:
        """Bind the listener socket and serve requests on a background thread."""
        if self.state is not ServerState.STOPPED:
            raise RuntimeError(f"Relay server is {self.state.value}")

        self.state = ServerState.STARTING
        try:
            self._socket = self._bind()
            self._server = make_server(
                self.host,
                self._socket.getsockname()[1],
                self.app,
                threaded=True,
                request_handler=make_request_handler(self.output),
                fd=self._socket.fileno(),
            )
        except ListenerBindError:
            self.state = ServerState.STOPPED
            raise
        except OSError as e:
            self._close_socket()
            self.state = ServerState.STOPPED
            raise ListenerBindError(f"Unable to start webhook server: {e}") from e

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name='relay-server',
            daemon=True,
        )
        self._thread.start()
        self.state = ServerState.LISTENING

        self.output.debug(f"webhook server started on {self.address}")
        return self.address

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(socket.SOMAXCONN)
        except OSError as e:
            sock.close()
            raise ListenerBindError(
                f"Unable to bind webhook server to {self.host}:{self.port}: {e}"
            ) from e
        return sock

    def _close_socket(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def stop(self) -> None:
        """Stop accepting connections and close the listener socket.

        Requests already being handled are left to finish on their own
        threads. The server always ends up STOPPED, even when closing the
        socket fails.
        """
        if self.state is ServerState.STOPPED:
            return

        self.state = ServerState.STOPPING
        address = self.address
        try:
            if self._server is not None:
                self._server.shutdown()
                self._server.server_close()
            self._close_socket()
        except OSError as e:
            raise ListenerCloseError(f"Unable to stop webhook server: {e}") from e
        finally:
            if self._thread is not None:
                self._thread.join(timeout=5)
            self._server = None
            self._thread = None
            self._socket = None
            self.state = ServerState.STOPPED

        self.output.debug(f"webhook server stopped on {address}")

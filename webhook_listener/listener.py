"""
Webhook listener - ties the relay server, the tunnel and the platform webhook together
"""
import signal
import threading
import traceback
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from rich.markup import escape

from .api import PlatformClient
from .events import ALL_EVENTS
from .output import Output
from .relay import RelayServer
from .tunnel import LocalTunnel

SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name)
    for name in ('SIGTERM', 'SIGINT', 'SIGUSR1', 'SIGUSR2')
    if hasattr(signal, name)
)


class WebhookListener:
    """Owns the three resources of a listening session.

    Resources are acquired in order (server, tunnel, webhook) and released in
    the fixed order tunnel, webhook, server. Each release runs even when an
    earlier one failed.
    """

    def __init__(
        self,
        server: RelayServer,
        tunnel: LocalTunnel,
        client: PlatformClient,
        output: Output,
        events: Sequence[str] = ALL_EVENTS,
    ):
        self.server = server
        self.tunnel = tunnel
        self.client = client
        self.output = output
        self.events = events

        self.port: Optional[int] = None
        self.tunnel_url: Optional[str] = None
        self.webhook: Optional[Dict[str, Any]] = None

        self._shutdown = threading.Event()
        self._teardown_lock = threading.Lock()

    # Acquire

    def acquire_server(self) -> int:
        _, self.port = self.server.start()
        return self.port

    def acquire_tunnel(self, port: int) -> str:
        self.tunnel_url = self.tunnel.open(port)
        return self.tunnel_url

    def acquire_webhook(self, url: str) -> Dict[str, Any]:
        self.webhook = self.client.create_webhook(url, self.events)
        return self.webhook

    def start(self) -> None:
        port = self.acquire_server()
        url = self.acquire_tunnel(port)
        self.acquire_webhook(url)

        scope = self.client.get_scope()
        self.output.log(f"Listening for webhooks on [bold]{escape(scope)}[/bold]")
        self.output.debug(f"Public URL: {url}")

        matcher = self.server.matcher
        if matcher:
            self.output.log("Forwarding webhooks to:")
            for rule in matcher.rules:
                self.output.log(
                    f" * [bold]{escape(rule.url)}[/bold] {escape(f'[{matcher.describe(rule)}]')}"
                )

    # Release

    def release_tunnel(self) -> None:
        if self.tunnel_url is None:
            return
        self.tunnel.close(self.tunnel_url)
        self.tunnel_url = None

    def release_webhook(self) -> None:
        if self.webhook is None:
            return
        self.client.delete_webhook(self.webhook['id'])
        self.webhook = None

    def release_server(self) -> None:
        if self.port is None:
            return
        try:
            self.server.stop()
        finally:
            # A server that failed to close its socket is still stopped
            self.port = None

    def _teardown_steps(self) -> List[Tuple[Callable[[], None], Callable[[], str]]]:
        return [
            (self.release_tunnel, lambda: f"Unable to close tunnel at '{self.tunnel_url}'"),
            (self.release_webhook, lambda: f"Unable to cleanup webhook '{self.webhook['id']}'"),
            (self.release_server, lambda: "Unable to stop webhook server"),
        ]

    def stop(self) -> None:
        """Release every acquired resource, logging failures step by step."""
        with self._teardown_lock:
            self.output.log("Stopping the webhook server")

            for release, failure_message in self._teardown_steps():
                try:
                    release()
                except Exception as e:
                    self.output.error(f"{failure_message()}: {e}")
                    self.output.debug(f"Error: {traceback.format_exc()}")

    @property
    def stopped(self) -> bool:
        return self.port is None and self.tunnel_url is None and self.webhook is None

    # Process lifecycle

    def request_shutdown(self, signum: Optional[int] = None, frame: Any = None) -> None:
        """Ask `run` to tear down; safe to call any number of times."""
        if signum is not None:
            self.output.debug(f"Received signal {signal.Signals(signum).name}")
        self._shutdown.set()

    def _install_signal_handlers(self) -> Dict[int, Any]:
        previous = {}
        for sig in SHUTDOWN_SIGNALS:
            previous[sig] = signal.getsignal(sig)
            signal.signal(sig, self.request_shutdown)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    def run(self) -> None:
        """Start listening and block until a shutdown signal arrives.

        A failure while starting tears down whatever was acquired and then
        re-raises the original error.
        """
        previous = self._install_signal_handlers()
        try:
            try:
                self.start()
            except BaseException:
                self.stop()
                raise

            while not self._shutdown.wait(0.5):
                pass

            self.stop()
        finally:
            self._restore_signal_handlers(previous)

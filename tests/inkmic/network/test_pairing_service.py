"""Tests for PairingService using fake zeroconf and loopback UDP."""

import socket
import threading

import pytest

from inkmic.errors import RegistrationFailure
from inkmic.network.discovery import SERVICE_TYPE, PairingService
from inkmic.network.models import PeerEndpoint


class PeerWatcher:
    """Records published peers and signals when one arrives."""

    def __init__(self, service):
        self.peers = []
        self.changed = threading.Event()
        service.peer.subscribe(self._on_peer)

    def _on_peer(self, peer):
        self.peers.append(peer)
        self.changed.set()

    def wait(self, timeout=2.0):
        assert self.changed.wait(timeout), "no peer change published"
        self.changed.clear()
        return self.peers[-1]


@pytest.fixture
def service(fake_zeroconf):
    """Provide a PairingService bound to loopback with fake DNS-SD."""
    service = PairingService(
        zeroconf_factory=fake_zeroconf,
        poll_interval=0.05,
        bind_address="127.0.0.1",
        advertised_address="127.0.0.1",
    )
    yield service
    service.cleanup()


@pytest.fixture
def client():
    """Provide a UDP socket acting as the receiver."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


def send(client, service, data):
    client.sendto(data, ("127.0.0.1", service.listening_port))


class TestRegistration:
    """Test advertising and listener setup."""

    def test_register_advertises_and_listens(self, service, fake_zeroconf):
        """Should register the service type and start the listener."""
        service.register_service(0, "Studio")

        zeroconf = fake_zeroconf.instances[0]
        assert zeroconf.registered[0].type == SERVICE_TYPE
        assert zeroconf.registered[0].name == f"Studio.{SERVICE_TYPE}"
        assert service.is_listening is True
        assert service.listening_port > 0

    def test_registration_failure(self, fake_zeroconf):
        """Should raise RegistrationFailure and leave nothing running."""
        service = PairingService(
            zeroconf_factory=lambda: fake_zeroconf(fail_register=True),
            bind_address="127.0.0.1",
            advertised_address="127.0.0.1",
        )

        with pytest.raises(RegistrationFailure):
            service.register_service(0, "Studio")

        assert service.is_listening is False
        assert fake_zeroconf.instances[0].closed is True

    def test_bind_failure(self, service, fake_zeroconf):
        """Should raise RegistrationFailure and unregister when the port is taken."""
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        blocker.bind(("127.0.0.1", 0))
        port = blocker.getsockname()[1]
        try:
            with pytest.raises(RegistrationFailure):
                # Without SO_REUSEADDR on the blocker this bind is refused on Linux
                service.register_service(port, "Studio")
        finally:
            blocker.close()

        zeroconf = fake_zeroconf.instances[0]
        assert zeroconf.unregistered == zeroconf.registered
        assert zeroconf.closed is True


class TestHandshake:
    """Test the CONNECT:<port> handshake."""

    def test_peer_uses_port_from_message_body(self, service, client):
        """Should pair with the source address and the declared port."""
        service.register_service(0, "Studio")
        watcher = PeerWatcher(service)

        send(client, service, b"CONNECT:5000")

        assert watcher.wait() == PeerEndpoint("127.0.0.1", 5000)
        assert client.getsockname()[1] != 5000

    def test_malformed_datagram_ignored(self, service, client):
        """Should drop garbage and keep listening."""
        service.register_service(0, "Studio")
        watcher = PeerWatcher(service)

        send(client, service, b"HELLO")
        send(client, service, b"CONNECT:99999")
        send(client, service, b"CONNECT:6000")

        assert watcher.wait() == PeerEndpoint("127.0.0.1", 6000)
        assert watcher.peers == [PeerEndpoint("127.0.0.1", 6000)]
        assert service.is_listening is True

    def test_oversized_port_digits_ignored(self, service, client):
        """Should ignore a handshake with thousands of digits and keep listening."""
        failures = []
        service.on_failure = failures.append
        service.register_service(0, "Studio")
        watcher = PeerWatcher(service)

        send(client, service, b"CONNECT:" + b"9" * 5000)
        send(client, service, b"CONNECT:5000")

        assert watcher.wait() == PeerEndpoint("127.0.0.1", 5000)
        assert failures == []
        assert service.is_listening is True

    def test_repeated_handshake_replaces_peer(self, service, client):
        """Should replace the peer wholesale on re-pairing."""
        service.register_service(0, "Studio")
        watcher = PeerWatcher(service)

        send(client, service, b"CONNECT:5000")
        watcher.wait()
        send(client, service, b"CONNECT:5001")

        assert watcher.wait() == PeerEndpoint("127.0.0.1", 5001)
        assert service.peer.value == PeerEndpoint("127.0.0.1", 5001)

    def test_mark_peer_lost_keeps_listening(self, service, client):
        """Should forget the peer but accept a new handshake."""
        service.register_service(0, "Studio")
        watcher = PeerWatcher(service)
        send(client, service, b"CONNECT:5000")
        watcher.wait()

        service.mark_peer_lost()
        assert watcher.wait() is None
        send(client, service, b"CONNECT:5002")

        assert watcher.wait() == PeerEndpoint("127.0.0.1", 5002)


class TestCleanup:
    """Test teardown."""

    def test_cleanup_resets_everything(self, service, client, fake_zeroconf):
        """Should unregister, stop listening and reset the peer."""
        service.register_service(0, "Studio")
        watcher = PeerWatcher(service)
        send(client, service, b"CONNECT:5000")
        watcher.wait()

        service.cleanup()

        zeroconf = fake_zeroconf.instances[0]
        assert zeroconf.unregistered == zeroconf.registered
        assert zeroconf.closed is True
        assert service.is_listening is False
        assert service.listening_port is None
        assert service.peer.value is None

    def test_cleanup_is_idempotent(self, service):
        """Should be safe with nothing active and when repeated."""
        service.cleanup()
        service.register_service(0, "Studio")
        service.cleanup()
        service.cleanup()

        assert service.is_listening is False

    def test_cleanup_does_not_report_failure(self, service):
        """Should not surface the socket-closed race as a failure."""
        failures = []
        service.on_failure = failures.append
        service.register_service(0, "Studio")

        service.cleanup()

        assert failures == []

    def test_reregister_replaces_previous(self, service, fake_zeroconf):
        """Should tear down the previous registration first."""
        service.register_service(0, "Studio")
        service.register_service(0, "Studio")

        assert fake_zeroconf.instances[0].closed is True
        assert fake_zeroconf.instances[1].closed is False
        assert service.is_listening is True

"""Service advertisement and handshake listener.

``PairingService.register_service`` advertises the microphone over DNS-SD
(zeroconf) and then listens on the advertised UDP port for a receiver's
``CONNECT:<port>`` handshake. Each valid handshake publishes a fresh
``PeerEndpoint`` built from the datagram's source address and the port named
in the message body.
"""

import logging
import socket
import threading
from collections.abc import Callable

from zeroconf import ServiceInfo, Zeroconf

from inkmic.errors import ListenerFailure, PairingError, RegistrationFailure
from inkmic.network.handshake import parse_handshake
from inkmic.network.models import PeerEndpoint
from inkmic.utils.store import StateStore

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_androidmic._udp.local."
RECEIVE_BUFFER_SIZE = 10240


def local_ipv4_address() -> str:
    """Best guess at the LAN address other hosts can reach us on."""
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; connect() only selects the outgoing interface
        probe.connect(("10.255.255.255", 1))
        return probe.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        probe.close()


class PairingService:
    """Advertises this microphone and resolves the receiver's endpoint."""

    def __init__(
        self,
        zeroconf_factory: Callable[[], Zeroconf] = Zeroconf,
        service_type: str = SERVICE_TYPE,
        poll_interval: float = 0.25,
        bind_address: str = "0.0.0.0",
        advertised_address: str | None = None,
    ) -> None:
        """Initialize the PairingService.

        Args:
            zeroconf_factory: Creates the zeroconf instance used for advertising
            service_type: DNS-SD service type the receiver browses for
            poll_interval: Seconds between cancellation checks in the listener
            bind_address: Interface the handshake socket binds to
            advertised_address: Address put in the DNS-SD record; auto-detected if None
        """
        self.service_type = service_type
        self.poll_interval = poll_interval
        self.bind_address = bind_address
        self.advertised_address = advertised_address
        self._zeroconf_factory = zeroconf_factory

        self.peer: StateStore[PeerEndpoint | None] = StateStore(None)
        self.on_failure: Callable[[PairingError], None] | None = None

        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._zeroconf: Zeroconf | None = None
        self._service_info: ServiceInfo | None = None
        self._socket: socket.socket | None = None
        self._listener: threading.Thread | None = None

    @property
    def is_listening(self) -> bool:
        """True while the handshake listener thread is alive."""
        listener = self._listener
        return listener is not None and listener.is_alive()

    @property
    def listening_port(self) -> int | None:
        """Actual bound port of the handshake socket (useful when registering port 0)."""
        sock = self._socket
        if sock is None:
            return None
        return sock.getsockname()[1]

    def _build_service_info(self, port: int, name: str) -> ServiceInfo:
        address = self.advertised_address or local_ipv4_address()
        return ServiceInfo(
            self.service_type,
            f"{name}.{self.service_type}",
            addresses=[socket.inet_aton(address)],
            port=port,
        )

    def register_service(self, port: int, name: str) -> None:
        """Advertise ``name`` on ``port`` and start listening for a handshake there.

        Any previous registration is torn down first.

        Raises:
            RegistrationFailure: If the advertisement or the UDP bind fails.
        """
        self.cleanup()
        self._cancelled.clear()

        info = self._build_service_info(port, name)
        try:
            zeroconf = self._zeroconf_factory()
        except Exception as e:
            logger.error("Could not start zeroconf: %s", e)
            raise RegistrationFailure(f"Could not start zeroconf: {e}") from e
        with self._lock:
            self._zeroconf = zeroconf

        try:
            zeroconf.register_service(info)
        except Exception as e:
            logger.error("Service registration failed: %s", e)
            self.cleanup()
            raise RegistrationFailure(f"Service registration failed: {e}") from e
        with self._lock:
            self._service_info = info
        logger.info("Service registered: %s on port %d", info.name, port)

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.bind_address, port))
            sock.settimeout(self.poll_interval)
        except OSError as e:
            sock.close()
            logger.error("Could not bind handshake listener on port %d: %s", port, e)
            self.cleanup()
            raise RegistrationFailure(f"Could not listen on UDP port {port}: {e}") from e

        listener = threading.Thread(
            target=self._listen, args=(sock,), name="inkmic-pairing", daemon=True
        )
        with self._lock:
            self._socket = sock
            self._listener = listener
        listener.start()

    def cleanup(self) -> None:
        """Unregister, stop the listener, close the socket and forget the peer.

        Idempotent, and safe to call from the listener thread itself.
        """
        self._cancelled.set()
        with self._lock:
            zeroconf, info = self._zeroconf, self._service_info
            sock, listener = self._socket, self._listener
            self._zeroconf = self._service_info = None
            self._socket = None
            self._listener = None

        if zeroconf is not None:
            try:
                if info is not None:
                    zeroconf.unregister_service(info)
                    logger.debug("Service unregistered: %s", info.name)
            except Exception as e:
                logger.warning("Service unregistration failed: %s", e)
            finally:
                zeroconf.close()

        if sock is not None:
            # Closing also breaks a receive that is blocked right now
            sock.close()
        if listener is not None and listener is not threading.current_thread():
            listener.join()

        if self.peer.value is not None:
            self.peer.set(None)

    def mark_peer_lost(self) -> None:
        """Drop the current peer but keep listening for a new handshake."""
        if self.peer.value is not None:
            logger.info("Peer %s lost", self.peer.value.describe())
            self.peer.set(None)

    def _listen(self, sock: socket.socket) -> None:
        logger.debug("Now listening for client on UDP port %d...", sock.getsockname()[1])
        try:
            while not self._cancelled.is_set():
                try:
                    data, source = sock.recvfrom(RECEIVE_BUFFER_SIZE)
                except TimeoutError:
                    continue
                self._handle_datagram(data, source[0], source[1])
        except OSError as e:
            if self._cancelled.is_set():
                logger.debug("Listener socket closed during cleanup: %s", e)
            else:
                self._fail(e)
        except Exception as e:
            self._fail(e)
        finally:
            sock.close()
            logger.debug("UDP listener has been shut down.")

    def _handle_datagram(self, data: bytes, address: str, source_port: int) -> None:
        logger.debug("Handshake datagram from %s:%d: %r", address, source_port, data[:64])
        port = parse_handshake(data)
        if port is None:
            logger.warning("Ignoring unknown handshake message from %s: %r", address, data[:64])
            return

        endpoint = PeerEndpoint(address, port)
        current = self.peer.value
        if current is not None and current != endpoint:
            logger.info("Re-pairing from %s to %s", current.describe(), endpoint.describe())
        logger.info("Client handshake accepted, streaming target %s", endpoint.describe())
        self.peer.set(endpoint)

    def _fail(self, error: Exception) -> None:
        logger.error("Error while listening for client: %s", error, exc_info=error)
        failure = ListenerFailure(f"Handshake listener failed: {error}")
        failure.__cause__ = error
        self.cleanup()
        if self.on_failure is not None:
            self.on_failure(failure)

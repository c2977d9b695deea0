"""Command-line tool for the InkMic wireless microphone.

Lists capture devices, runs a microphone session in the foreground, and
provides a minimal receiver for checking a session end to end.
"""

import signal
import socket
import sys
import time

import click
import sounddevice as sd
from dependency_injector import providers

from inkmic.audio.devices import AudioDeviceService
from inkmic.core.container import Container
from inkmic.daemons import mic_daemon
from inkmic.network.handshake import build_handshake
from inkmic.session.models import SessionState
from inkmic.system.structlog_configurator import configure_structlog


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """InkMic wireless microphone.

    Examples:
      # List capture devices
      inkmic devices

      # Advertise, wait for a receiver and stream to it
      inkmic run --name Studio

      # Capture and visualize only, without pairing
      inkmic run --no-pairing

      # Act as a receiver for a microphone at 192.168.1.20
      inkmic receive 192.168.1.20 --listen-port 5000 --count 100
    """
    ctx.ensure_object(dict)


@cli.command()
def devices() -> None:
    """List available audio input devices."""
    try:
        found = AudioDeviceService().discover_input_devices()
    except sd.PortAudioError as e:
        click.echo(click.style(f"✗ Could not query audio devices: {e}", fg="red"))
        sys.exit(1)

    if not found:
        click.echo(click.style("✗ No input devices found", fg="yellow"))
        sys.exit(1)

    click.echo("Input devices:")
    for device in found:
        marker = click.style(" (default)", fg="green") if device.is_default else ""
        click.echo(
            f"  [{device.index}] {device.name}{marker} - "
            f"{device.max_input_channels} ch, {device.default_samplerate:.0f} Hz"
        )


@cli.command()
@click.option("--port", type=click.IntRange(1, 65535), help="Port to advertise and listen on")
@click.option("--name", help="Service name to advertise (defaults to the configured name)")
@click.option("--no-pairing", is_flag=True, help="Record without advertising the service")
def run(port: int | None, name: str | None, no_pairing: bool) -> None:
    """Run a microphone session in the foreground until interrupted."""
    container = Container()
    config = container.config()
    updates = {}
    if port is not None:
        updates["broadcast_port"] = port
    if name:
        updates["device_name"] = name
    if updates:
        config = config.model_copy(update=updates)
        container.config.override(providers.Object(config))
    configure_structlog(config)

    signal.signal(signal.SIGTERM, mic_daemon._signal_handler)
    signal.signal(signal.SIGINT, mic_daemon._signal_handler)
    mic_daemon.DaemonState.reset()

    controller = container.session_controller()

    def echo_state(state: SessionState) -> None:
        click.echo(f"\r{state.status_line()}", nl=False)

    controller.state.subscribe(echo_state)
    click.echo(f"Starting '{config.device_name}' (Ctrl+C to stop)")
    try:
        mic_daemon.run_session(controller, pairing=not no_pairing)
    finally:
        click.echo("")

    error = controller.state.value.error
    if error:
        click.echo(click.style(f"✗ {error}", fg="red"))
        sys.exit(1)
    click.echo(click.style("✓ Session closed", fg="green"))


@cli.command()
@click.argument("host")
@click.option("--handshake-port", default=12346, show_default=True, help="Microphone's port")
@click.option("--listen-port", default=5000, show_default=True, help="Local audio port")
@click.option("--count", default=50, show_default=True, help="Datagrams to receive")
@click.option("--timeout", default=5.0, show_default=True, help="Seconds to wait per datagram")
def receive(host: str, handshake_port: int, listen_port: int, count: int, timeout: float) -> None:
    """Pair with a microphone at HOST and report the audio datagrams received."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(("0.0.0.0", listen_port))
        sock.settimeout(timeout)
        sock.sendto(build_handshake(listen_port), (host, handshake_port))
        click.echo(f"Sent handshake to {host}:{handshake_port}, listening on {listen_port}")

        received = 0
        total_bytes = 0
        started = time.monotonic()
        while received < count:
            try:
                data, _ = sock.recvfrom(65535)
            except TimeoutError:
                break
            received += 1
            total_bytes += len(data)
        elapsed = time.monotonic() - started
    except OSError as e:
        click.echo(click.style(f"✗ Network error: {e}", fg="red"))
        sys.exit(1)
    finally:
        sock.close()

    if received == 0:
        click.echo(click.style("✗ No audio received", fg="red"))
        sys.exit(1)

    click.echo(
        click.style(f"✓ Received {received} datagrams", fg="green")
        + f" ({total_bytes} bytes, {total_bytes // received} bytes avg, {elapsed:.1f}s)"
    )


def main() -> None:
    """Entry point for the InkMic CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()

"""Dependency injection container for the InkMic application."""

from dependency_injector import containers, providers

from inkmic.analysis.spectrum import SpectrumAnalyzer
from inkmic.audio.sounddevice_backend import SoundDeviceBackend
from inkmic.audio.capture import CaptureEngine
from inkmic.audio.devices import AudioDeviceService
from inkmic.core.config import get_config
from inkmic.network.discovery import PairingService
from inkmic.network.streamer import StreamSender
from inkmic.session.controller import SessionController
from inkmic.session.permission import PermissionStateMachine
from inkmic.system.path_resolver import PathResolver


class Container(containers.DeclarativeContainer):
    """Application dependency injection container.

    Every collaborator of the session is a singleton: there is one microphone,
    one advertisement and one outgoing stream per process.
    """

    path_resolver = providers.Singleton(PathResolver)

    config = providers.Singleton(
        get_config,
        path_resolver=path_resolver,
    )

    # Audio
    audio_device_service = providers.Singleton(AudioDeviceService)

    capture_backend = providers.Singleton(
        SoundDeviceBackend,
        device_index=config.provided.audio_device_index,
    )

    capture_engine = providers.Singleton(
        CaptureEngine,
        backend=capture_backend,
        configs=config.provided.fallback_configs.call(),
        buffer_multiplier=config.provided.buffer_multiplier,
    )

    # Network
    pairing_service = providers.Singleton(
        PairingService,
        service_type=config.provided.service_type,
        poll_interval=config.provided.listener_poll_interval,
    )

    stream_sender = providers.Singleton(
        StreamSender,
        queue_size=config.provided.send_queue_size,
    )

    # Analysis
    spectrum_analyzer = providers.Singleton(
        SpectrumAnalyzer,
        size=config.provided.visualization_size,
        smoothing_window=config.provided.smoothing_window,
        max_fft_size=config.provided.max_fft_size,
    )

    # Session
    permission = providers.Singleton(
        PermissionStateMachine,
        checker=audio_device_service.provided.has_input_device,
    )

    session_controller = providers.Singleton(
        SessionController,
        capture=capture_engine,
        pairing=pairing_service,
        sender=stream_sender,
        analyzer=spectrum_analyzer,
        permission=permission,
        broadcast_port=config.provided.broadcast_port,
        device_name=config.provided.device_name,
        tick_interval=config.provided.tick_interval,
    )

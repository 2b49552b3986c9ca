"""Transport capability contract and the bundled simulated transport."""

from serial_dispatch.control_plane.dispatcher import Transport
from serial_dispatch.transport.simulated import (
    SimulatedOutcome,
    SimulatedTransport,
    SimulatedTransportError,
    SimulationProfile,
)

__all__ = [
    "SimulatedOutcome",
    "SimulatedTransport",
    "SimulatedTransportError",
    "SimulationProfile",
    "Transport",
]

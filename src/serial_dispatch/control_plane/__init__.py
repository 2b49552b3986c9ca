"""Dispatcher admission/resolution state machine, its settings, and its timers."""

from serial_dispatch.control_plane.dispatcher import Dispatcher, Transport
from serial_dispatch.control_plane.settings import DispatcherSettings
from serial_dispatch.control_plane.timers import OneShotTimer

__all__ = ["Dispatcher", "DispatcherSettings", "OneShotTimer", "Transport"]

"""
The channel package.
Connect-per-call access to the supervisor's named pipe.
"""
from .pipe import NamedPipeTransport, PipeTransport
from .session import ChannelSession

__all__ = ["ChannelSession", "NamedPipeTransport", "PipeTransport"]

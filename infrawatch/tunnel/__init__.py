"""SSH access to the jump host and the remote agents behind it."""

from .client import JumpHostClient, RemoteAgentClient, TunnelError
from .stats import CallStatistics, CallStatsSnapshot

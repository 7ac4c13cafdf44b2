"""Exception taxonomy for the agent."""


class AgentError(Exception):
    """Base class for agent errors."""


class ConfigError(AgentError):
    """Invalid configuration value (unknown policy, bad factor, ...)."""


class GatewayError(AgentError):
    """Exchange or market-data call failed. Transient: the tick is abandoned, the loop continues."""


class InvariantViolation(AgentError):
    """Local state and exchange state disagree in a way that must not be overwritten silently."""

"""Exceptions raised while building or configuring an experiment."""


class FlowSimError(Exception):
    """Base class for all flow simulator errors."""


class ConfigurationError(FlowSimError):
    """Malformed topology or component configuration."""


class InvalidFlowSpec(FlowSimError):
    """A flow specification failed validation."""


class ParseError(FlowSimError):
    """A command line value could not be parsed."""

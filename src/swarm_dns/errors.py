"""Exception hierarchy for swarm-dns."""


class SwarmDNSError(Exception):
    """Base class for all swarm-dns errors."""


class ProviderError(SwarmDNSError):
    """A DNS provider call failed."""


class AddressResolutionError(SwarmDNSError):
    """The public IP address could not be determined."""


class LabelError(SwarmDNSError):
    """Service labels did not describe any usable DNS record."""


class ConfigError(SwarmDNSError):
    """Configuration is missing or invalid."""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))

class NuGetProtocolError(Exception):
    """Base exception for all nuget-protocol errors"""


class ProtocolError(NuGetProtocolError):
    """Transport-level failure while talking to a package source"""


class MetadataError(NuGetProtocolError):
    """Error while fetching or parsing source metadata"""


class PackageReadError(NuGetProtocolError):
    """Error while reading the identity out of a package stream"""


class ProtocolContractError(NuGetProtocolError):
    """The remote source returned data that violates the protocol contract"""


class ConfigError(NuGetProtocolError):
    """Error while loading configuration"""

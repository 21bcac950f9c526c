# errors.py

class ResolverError(Exception):
    """Base exception class for block and price resolution errors"""
    pass

class ConfigurationError(ResolverError):
    """Raised when a required endpoint or credential is missing. Fatal."""
    pass

class OracleUnavailable(ResolverError):
    """Raised when an RPC endpoint is unreachable or returns a malformed result"""
    pass

class BlockNotFound(ResolverError):
    """Raised when the chain reports no such block"""
    pass

class InvalidRange(ResolverError):
    """Raised when block search bounds are degenerate"""
    pass

class UnsupportedChain(ResolverError):
    """Raised when a chain is unknown or has no price-platform mapping"""
    pass

class PriceUnavailable(ResolverError):
    """Raised when every applicable price tier failed"""
    pass

class InvalidDate(ResolverError, ValueError):
    """Raised when a date string is not YYYY-MM-DD"""
    pass

class FutureDate(InvalidDate):
    """Raised when a date lies in the future"""
    pass

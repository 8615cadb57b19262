# verifychain/errors.py


class VerifyChainError(Exception):
    """Base class for every error raised inside verifychain."""


class OracleUnavailable(VerifyChainError):
    """The oracle could not be reached or answered with a non-2xx status."""


class OracleMalformed(VerifyChainError):
    """The oracle answered, but no usable verdict could be read from the reply."""


class LedgerError(VerifyChainError):
    """The ledger collaborator rejected or failed a call."""


class ConfigurationInvalid(VerifyChainError):
    """A configuration value is missing or outside its accepted range."""

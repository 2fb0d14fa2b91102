"""Error taxonomy shared by the analysis core and the HTTP layer."""


class GuardianError(Exception):
    """Base for all errors raised by the analysis core."""


class ValidationError(GuardianError):
    """Request is missing or malformed its required fields. Nothing is written to history."""


class UpstreamModelError(GuardianError):
    """The vision-language model call could not be completed. Not retried here."""


class ParseError(GuardianError):
    """Model output could not be read as a verdict. Always recovered by the normalizer."""


class PersistenceError(GuardianError):
    """History append failed. Logged by callers; never alters a response already in flight."""

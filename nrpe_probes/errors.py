class ProbeUnknownError(RuntimeError):
    """
    A probe could not produce a trustworthy result.

    Raised by the service layer for invalid arguments, unreadable counter
    sources, corrupt samples and impossible deltas. The command line layer
    reports it as UNKNOWN with the exception message.
    """

class HostdError(Exception):
    pass


class ConfigError(HostdError):
    """missing secret, unknown module, invalid identifier or argument"""


class AlreadyExistsError(HostdError):
    pass


class NotFoundError(HostdError):
    pass


class TransportError(HostdError):
    """client construction or unexpected cluster api failure"""


class ProcessError(HostdError):
    """nonzero exit of a local or remote command"""

    def __init__(self, message: str, returncode: int | None = None, output: str | None = None) -> None:
        self.returncode = returncode
        self.output = output
        if output:
            message = f"{message}\nOutput: {output.strip()}"
        super().__init__(message)

"""Errors raised while provisioning."""


class ProvisionError(RuntimeError):
    """Base error for fatal provisioning failures."""


class UnsupportedEnvironmentError(ProvisionError):
    """The host lacks a supported package manager or installer."""


class CommandFailedError(ProvisionError):
    """An external command exited non-zero or could not be found."""

    def __init__(self, command: str, detail: str = ''):
        self.command = command
        self.detail = detail
        message = f"Command failed: {command}"
        if detail:
            message = f"{message}\n{detail}"
        super().__init__(message)

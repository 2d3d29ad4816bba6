"""Error types raised while launching conductors, web app managers and the CLI."""

from __future__ import annotations


class FileSystemError(Exception):
    """A failure reading from or writing to the filesystem."""

    def __init__(self, detail: object) -> None:
        self.detail = str(detail)
        super().__init__(self.detail)


class InitializeConductorError(Exception):
    """Base class for failures reported by the conductor while it initialises."""

    _template = "{}"

    def __init__(self, detail: object) -> None:
        self.detail = detail
        super().__init__(self._template.format(detail))


class UnknownConductorError(InitializeConductorError):
    """The conductor failed to start for a reason that was not recognised."""

    _template = "Unknown Error: `{}`"


class SqliteConductorError(InitializeConductorError):
    """The conductor could not open its databases."""

    _template = "Could not connect to the database of the conductor: `{}`"


class AddressAlreadyInUseError(InitializeConductorError):
    """The conductor could not bind its interface because the address is taken."""

    _template = "Address already in use: `{}`"


class LaunchHolochainError(Exception):
    """Base class for failures while launching a conductor."""

    _template = "{}"

    def __init__(self, detail: object) -> None:
        self.detail = detail
        super().__init__(self._template.format(detail))


class LaunchChildError(LaunchHolochainError):
    """The conductor process could not be started."""

    _template = "Failed to launch child: `{}`"


class ErrorWritingPassword(LaunchHolochainError):
    """The passphrase could not be written to the conductor's stdin."""

    _template = "Failed to write the password: `{}`"


class HolochainIoError(LaunchHolochainError):
    """A filesystem operation failed while preparing the conductor."""

    _template = "Error with the filesystem: `{}`"


class CouldNotConnectToConductor(LaunchHolochainError):
    """The admin interface of the conductor could not be reached."""

    _template = "Could not connect to the conductor: `{}`"


class CouldNotInitializeConductor(LaunchHolochainError):
    """The conductor reported an initialisation error."""

    _template = "Could not initialize conductor: `{}`"

    def __init__(self, detail: InitializeConductorError) -> None:
        super().__init__(detail)
        self.__cause__ = detail


class ImpossibleError(LaunchHolochainError):
    """The launch ended in a state that should not be reachable."""

    _template = "Impossible error: `{}`"


class LaunchWebAppManagerError(Exception):
    """A failure while launching the web app manager.

    The message depends on the kind of cause: a conductor launch failure,
    a filesystem failure, or any other description.
    """

    def __init__(self, cause: object) -> None:
        self.cause = cause
        if isinstance(cause, LaunchHolochainError):
            message = f"Error launching Holochain: `{cause}`"
        elif isinstance(cause, FileSystemError):
            message = f"Failed to read or write from the filesystem: `{cause}`"
        else:
            message = f"Error launching the WebAppManager: `{cause}`"
        super().__init__(message)
        if isinstance(cause, BaseException):
            self.__cause__ = cause


_HC_LAUNCH_TEMPLATES = {
    "ui_path_does_not_exist": 'Specified UI path "{}" does not exist.',
    "data_to_sign": 'Failed to get data to sign from unsigned zome call: "{}"',
    "sign_zome_call": 'Failed to sign by public key: "{}"',
}


class HcLaunchError(Exception):
    """A failure of the launch command.

    ``kind`` is one of ``ui_path_does_not_exist``, ``data_to_sign`` or
    ``sign_zome_call``.
    """

    def __init__(self, kind: str, detail: object) -> None:
        try:
            template = _HC_LAUNCH_TEMPLATES[kind]
        except KeyError:
            raise ValueError(f"unknown launch error kind: {kind!r}") from None
        self.kind = kind
        self.detail = detail
        super().__init__(template.format(detail))
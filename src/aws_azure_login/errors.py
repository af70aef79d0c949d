from __future__ import annotations


class CLIError(RuntimeError):
    """
    A failure the operator can act on. The CLI prints the message without a traceback.
    """


class UserFacingFailure(CLIError):
    """
    Azure AD showed a hard-failure screen (blocked sign-in, exhausted attempts, service exception).

    The message is the on-page text, verbatim.
    """


class UnrecognizedStateError(CLIError):
    def __init__(self, screenshot_path: str) -> None:
        self.screenshot_path = screenshot_path
        super().__init__(
            f"Unable to recognize page state! A screenshot has been dumped to {screenshot_path}. "
            "If this problem persists, try running with --mode=gui or --mode=debug"
        )


class TransitionTimeoutError(CLIError):
    """
    A bounded wait for the login page to move on expired.
    """


class MissingAssertionError(CLIError):
    """
    The intercepted request carried no usable SAMLResponse (absent, empty, or repeated).
    """


class PageParseError(RuntimeError):
    """
    A recognized screen did not contain the elements needed to act on it.
    """


class SessionClosedError(RuntimeError):
    """
    Raised by every browser-session operation once the session has been released.
    """


class ProfileNotFoundError(CLIError):
    pass


class ProfileConfigError(CLIError):
    pass

from .interceptor import CredentialInterceptor, extract_assertion
from .machine import UNRECOGNIZED_STATE_SCREENSHOT, PageStateMachine
from .selectors import LoginSelectors
from .session import BrowserSession, open_session
from .states import LoginContext, Screen, State, default_states

__all__ = [
    "BrowserSession",
    "CredentialInterceptor",
    "LoginContext",
    "LoginSelectors",
    "PageStateMachine",
    "Screen",
    "State",
    "UNRECOGNIZED_STATE_SCREENSHOT",
    "default_states",
    "extract_assertion",
    "open_session",
]

from .errors import CLIError
from .login import login_all, login_profile, perform_login

__all__ = ["CLIError", "login_all", "login_profile", "perform_login"]

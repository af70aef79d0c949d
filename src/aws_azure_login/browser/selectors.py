from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LoginSelectors:
    """
    Azure AD renders its sign-in flow as one SPA; element ids/classes change occasionally.
    Keep all selectors/text hooks here for easy maintenance.

    `.moveOffScreen` is how Azure AD parks an input that belongs to a screen it has already left.
    """

    error_banner: str = ".alert-error"
    submit_button: str = "input[type=submit]"

    # Username
    username_state: str = 'input[name="loginfmt"]:not(.moveOffScreen)'
    username_input: str = 'input[name="loginfmt"]'
    username_done: str = "input[name=loginfmt].has-error,input[name=loginfmt].moveOffScreen"

    # Work/school vs. personal Microsoft account
    account_selection_state: str = "#aadTile > div > div.table-cell.tile-img > img"
    account_aad_title: str = "#aadTileTitle"
    account_msa_title: str = "#msaTileTitle"

    # Passwordless (Authenticator push with a number to match on the phone)
    passwordless_state: str = "input[value='Send notification']"
    passwordless_display_sign: str = "#idRemoteNGC_DisplaySign"
    passwordless_description: str = "#idDiv_RemoteNGC_PollingDescription"

    # Password
    password_state: str = 'input[name="Password"]:not(.moveOffScreen),input[name="passwd"]:not(.moveOffScreen)'
    password_input: str = 'input[name="Password"],input[name="passwd"]'
    password_submit: str = "span[class=submit],input[type=submit]"
    password_done: str = (
        "input[name=Password].has-error,input[name=Password].moveOffScreen,"
        "input[name=passwd].has-error,input[name=passwd].moveOffScreen"
    )

    # Two-factor: approve elsewhere (may show a number to enter in the Authenticator app)
    tfa_instructions_state: str = "#idDiv_SAOTCAS_Description"
    tfa_display_sign: str = "#idRichContext_DisplaySign"
    tfa_number_hint: str = "enter the number shown to sign in"

    # Two-factor: denied / timed out
    tfa_failed_state: str = "#idDiv_SAASDS_Description,#idDiv_SAASTO_Description"

    # Two-factor: type a one-time code
    tfa_code_state: str = "input[name=otc]:not(.moveOffScreen)"
    tfa_code_input: str = 'input[name="otc"]'
    tfa_code_description: str = "#idDiv_SAOTCC_Description"
    tfa_code_done: str = "input[name=otc].has-error,input[name=otc].moveOffScreen"

    # "Stay signed in?"
    remember_me_state: str = "#KmsiDescription"
    remember_me_accept: str = "#idSIButton9"
    remember_me_decline: str = "#idBtn_Back"

    service_exception_state: str = "#service_exception_message"

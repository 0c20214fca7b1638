from __future__ import annotations

import argparse
import getpass
import json
import logging
from typing import Any, Callable

import requests
from dotenv import load_dotenv

from khetsetu.api.contracts import LoginCredentials, RegisterData, User
from khetsetu.client.auth_state import AuthProvider
from khetsetu.client.errors import ApiClientError
from khetsetu.client.http_client import HttpClient
from khetsetu.client.token_store import JsonFileTokenStorage, TokenStore
from khetsetu.core import validators
from khetsetu.core.config import AppConfig
from khetsetu.core.logging import setup_logging

LOGGER = logging.getLogger(__name__)


def build_provider(config: AppConfig) -> AuthProvider:
    store = TokenStore(JsonFileTokenStorage(config.storage.token_file))
    client = HttpClient(
        base_url=config.api.base_url,
        token_store=store,
        timeout_seconds=config.api.timeout_seconds,
    )
    return AuthProvider(client)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="khetsetu", description="KhetSetu account session from the command line."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the session tokens.")
    login.add_argument("--email", required=True)
    login.add_argument("--password", default="", help="Prompted when omitted.")

    register = sub.add_parser("register", help="Create an account and log in.")
    register.add_argument("--email", required=True)
    register.add_argument("--name", required=True)
    register.add_argument("--phone", default="")
    register.add_argument("--role", choices=["farmer", "advisor", "admin"], default="farmer")
    register.add_argument("--password", default="", help="Prompted when omitted.")
    register.add_argument("--confirm-password", default="", help="Prompted when omitted.")

    sub.add_parser("logout", help="End the session and forget stored tokens.")
    sub.add_parser("whoami", help="Show the logged-in user.")

    change = sub.add_parser("change-password", help="Change the account password.")
    change.add_argument("--current-password", default="")
    change.add_argument("--new-password", default="")
    change.add_argument("--confirm-password", default="")

    forgot = sub.add_parser("forgot-password", help="Request a password reset token.")
    forgot.add_argument("--email", required=True)

    reset = sub.add_parser("reset-password", help="Set a new password with a reset token.")
    reset.add_argument("--token", required=True)
    reset.add_argument("--new-password", default="")
    return parser


def _secret(value: str, prompt: str) -> str:
    return value or getpass.getpass(prompt)


def _user_summary(user: User | None) -> dict[str, Any] | None:
    return user.to_wire() if user is not None else None


def _login(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    password = _secret(args.password, "Password: ")
    validators.ensure_valid(validators.collect_login_errors(args.email, password))
    user = provider.login(LoginCredentials(email=args.email, password=password))
    return {"status": "logged_in", "user": _user_summary(user)}


def _register(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    password = _secret(args.password, "Password: ")
    confirm = _secret(args.confirm_password, "Confirm password: ")
    form = {
        "email": args.email,
        "name": args.name,
        "phone": args.phone,
        "password": password,
    }
    validators.ensure_valid(validators.collect_registration_errors(form, confirm))
    user = provider.register(
        RegisterData(
            email=args.email,
            password=password,
            name=args.name.strip(),
            phone=args.phone or None,
            role=args.role,
        )
    )
    return {"status": "registered", "user": _user_summary(user)}


def _logout(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    provider.logout()
    return {"status": "logged_out"}


def _whoami(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    state = provider.mount()
    if not state.is_authenticated:
        return {"status": "anonymous", "user": None}
    return {"status": "authenticated", "user": _user_summary(state.user)}


def _change_password(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    state = provider.mount()
    if not state.is_authenticated:
        raise SystemExit("Not logged in.")
    current = _secret(args.current_password, "Current password: ")
    new = _secret(args.new_password, "New password: ")
    confirm = _secret(args.confirm_password, "Confirm new password: ")
    validators.ensure_valid(validators.collect_password_change_errors(current, new, confirm))
    provider.change_password(current, new)
    return {"status": "password_changed"}


def _forgot_password(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    validators.ensure_valid(validators.collect_email_errors(args.email))
    return provider.client.forgot_password(args.email)


def _reset_password(provider: AuthProvider, args: argparse.Namespace) -> dict[str, Any]:
    new = _secret(args.new_password, "New password: ")
    message = validators.password_policy_error(new, label="New password")
    validators.ensure_valid({"new_password": message} if message else {})
    return provider.client.reset_password(args.token, new)


COMMANDS: dict[str, Callable[[AuthProvider, argparse.Namespace], dict[str, Any]]] = {
    "login": _login,
    "register": _register,
    "logout": _logout,
    "whoami": _whoami,
    "change-password": _change_password,
    "forgot-password": _forgot_password,
    "reset-password": _reset_password,
}


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    args = build_parser().parse_args(argv)
    provider = build_provider(config)

    try:
        summary = COMMANDS[args.command](provider, args)
    except validators.FieldValidationError as exc:
        print(json.dumps({"status": "invalid", "errors": exc.errors}, ensure_ascii=False, indent=2))
        raise SystemExit(2) from exc
    except ApiClientError as exc:
        raise SystemExit(f"{args.command} failed: {exc.message}") from exc
    except requests.RequestException as exc:
        raise SystemExit(
            "Network error: Unable to connect to the server. "
            "Please check your internet connection."
        ) from exc

    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()

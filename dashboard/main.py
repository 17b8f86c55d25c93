"""MDM admin dashboard: command-line entry point.

Every sub-command mounts one page view-model, optionally performs an
action on it and prints the rendered page:

1. **Session** – ``login``, ``logout``, ``whoami``, ``register``
2. **Pages** – ``overview``, ``devices``, ``device``, ``apps``, ``urls``,
   ``requests``, ``violations``, ``settings``
3. **Demo** – ``--demo`` runs against an in-process fake backend
   (log in with ``admin@example.com`` / ``demo1234``)

``requests --watch`` keeps the page mounted, re-polling the backend and
ticking cooldown countdowns until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import signal
import sys
from typing import Awaitable, Callable

from . import render
from .auth import REASON_LOGOUT
from .config import Settings, settings as default_settings
from .errors import ApiError, DashboardError, DeviceNotFoundError, InputError, get_error_message
from .state import AppState
from .storage import SessionStore
from .views import (
    AppsView,
    DeviceDetailView,
    DeviceScopedView,
    DevicesView,
    RequestsView,
    SettingsView,
    UrlsView,
    View,
    ViolationsView,
)

log = logging.getLogger("dashboard")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# The command runner
# ---------------------------------------------------------------------------


class DashboardCli:
    """Runs one parsed command against an :class:`AppState`."""

    def __init__(self, state: AppState, args: argparse.Namespace) -> None:
        self._state = state
        self._args = args
        self._stop_event = asyncio.Event()
        self._session_ended = False
        state.auth.on_logout(self._on_logout)

    @property
    def watching(self) -> bool:
        return bool(getattr(self._args, "watch", False))

    def request_stop(self) -> None:
        """Thread-safe stop request (used by ``--watch``)."""
        log.info("Stop requested.")
        self._stop_event.set()

    def _on_logout(self, reason: str) -> None:
        if reason == REASON_LOGOUT:
            return
        self._session_ended = True
        print("Your session has ended. Run 'mdm-dashboard login' to sign in again.", file=sys.stderr)

    async def run(self) -> int:
        handler: Callable[[], Awaitable[int]] = getattr(self, f"_cmd_{self._args.command}")
        try:
            async with self._state:
                return await handler()
        except DashboardError as exc:
            print(f"Error: {exc.message}", file=sys.stderr)
            return EXIT_ERROR

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_session(self) -> None:
        if not await self._state.auth.verify():
            if self._session_ended:
                raise DashboardError("Not logged in")
            raise DashboardError("Not logged in. Run 'mdm-dashboard login' first.")

    def _show(self, text: str) -> None:
        print(text)

    def _status(self, view: View, ok: bool = True) -> int:
        if not ok or view.error or not self._state.auth.is_authenticated:
            return EXIT_ERROR
        return EXIT_OK

    def _require_device(self, view: DeviceScopedView) -> None:
        if view.device is not None:
            return
        if self._state.devices.error:
            raise DashboardError(self._state.devices.error)
        self._show(render.render_not_found(view))
        raise DeviceNotFoundError(view.device_id)

    def _credentials(self) -> tuple[str, str]:
        if self._args.demo:
            print("Demo backend: log in with admin@example.com / demo1234")
        email = self._args.email or input("Email: ").strip()
        password = self._args.password or getpass.getpass("Password: ")
        if not email or not password:
            raise InputError("Email and password are required")
        return email, password

    # ------------------------------------------------------------------
    # Session commands
    # ------------------------------------------------------------------

    async def _cmd_login(self) -> int:
        email, password = self._credentials()
        try:
            admin = await self._state.auth.login(email, password)
        except ApiError as exc:
            print(f"Login failed: {get_error_message(exc)}", file=sys.stderr)
            return EXIT_ERROR
        print(f"Logged in as {admin.email}")
        return EXIT_OK

    async def _cmd_logout(self) -> int:
        self._state.auth.logout()
        print("Logged out.")
        return EXIT_OK

    async def _cmd_whoami(self) -> int:
        await self._require_session()
        user = self._state.auth.user
        print(f"{user.email} (admin #{user.id})")
        return EXIT_OK

    async def _cmd_register(self) -> int:
        email, password = self._credentials()
        try:
            result = await self._state.auth.register(email, password)
        except ApiError as exc:
            print(f"Registration failed: {get_error_message(exc)}", file=sys.stderr)
            return EXIT_ERROR
        print(result.message or f"Registered {email}")
        return EXIT_OK

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def _cmd_overview(self) -> int:
        await self._require_session()
        async with DevicesView(self._state) as view:
            self._show(render.render_overview(view))
            return self._status(view)

    async def _cmd_devices(self) -> int:
        await self._require_session()
        async with DevicesView(self._state) as view:
            self._show(render.render_devices(view))
            return self._status(view)

    async def _cmd_device(self) -> int:
        await self._require_session()
        async with DeviceDetailView(self._state, self._args.device_id) as view:
            self._require_device(view)
            self._show(render.render_device_detail(view))
            return self._status(view)

    async def _cmd_apps(self) -> int:
        await self._require_session()
        args = self._args
        async with AppsView(self._state, args.device_id) as view:
            self._require_device(view)
            ok = True
            action = next(
                (name for name in ("block", "unblock", "lock", "unlock") if getattr(args, name)),
                None,
            )
            if action is not None:
                key = getattr(args, action)
                app = view.find(key)
                if app is None:
                    raise InputError(f"No app {key!r} on device {view.device_id}")
                if action in ("block", "unblock"):
                    ok = await view.toggle_block(app.id, action == "block")
                else:
                    ok = await view.toggle_lock(app.id, action == "lock")
            if args.search:
                view.search(args.search)
            self._show(render.render_apps(view))
            return self._status(view, ok)

    async def _cmd_urls(self) -> int:
        await self._require_session()
        args = self._args
        async with UrlsView(self._state, args.device_id) as view:
            self._require_device(view)
            ok = True
            if args.add is not None:
                ok = await view.add(args.add, args.description)
            elif args.remove is not None:
                entry = view.find(args.remove)
                if entry is not None and not args.yes and not _confirm(
                    f"Remove {entry.url_pattern!r} from the blacklist?"
                ):
                    print("Cancelled.")
                    return EXIT_OK
                ok = await view.remove(args.remove)
            self._show(render.render_urls(view))
            return self._status(view, ok)

    async def _cmd_requests(self) -> int:
        await self._require_session()
        args = self._args
        view = RequestsView(self._state)
        try:
            await view.mount(live=args.watch)
            if args.status:
                view.set_filter(args.status)
            ok = True
            if args.approve is not None:
                ok = await view.approve(args.approve, args.notes)
            elif args.deny is not None:
                ok = await view.deny(args.deny, args.notes)

            if not args.watch:
                self._show(render.render_requests(view))
                return self._status(view, ok)

            view.on_change = lambda: self._redraw(render.render_requests(view))
            self._redraw(render.render_requests(view))
            unsubscribe = self._state.auth.on_logout(lambda reason: self.request_stop())
            try:
                await self._stop_event.wait()
            finally:
                unsubscribe()
            return self._status(view)
        finally:
            await view.close()

    async def _cmd_violations(self) -> int:
        await self._require_session()
        async with ViolationsView(self._state, self._args.device or "all") as view:
            self._show(render.render_violations(view))
            return self._status(view)

    async def _cmd_settings(self) -> int:
        await self._require_session()
        args = self._args
        async with SettingsView(self._state, args.device_id) as view:
            self._require_device(view)
            changes = {
                "cooldown_hours": args.cooldown_hours,
                "require_admin_approval": args.require_approval,
                "vpn_always_on": args.vpn,
                "prevent_factory_reset": args.prevent_reset,
            }
            ok = True
            if any(value is not None for value in changes.values()):
                view.update(**changes)
                ok = await view.save()
            self._show(render.render_settings(view))
            return self._status(view, ok)

    def _redraw(self, text: str) -> None:
        if sys.stdout.isatty():
            # clear screen, cursor home
            sys.stdout.write("\033[2J\033[H")
        print(text, flush=True)


def _confirm(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Console entry point
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool = False, level: str = "WARNING") -> None:
    level = "DEBUG" if verbose else level.upper()
    fmt = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt)
    # httpx logs every request at INFO
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mdm-dashboard", description="MDM admin dashboard")
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--demo", action="store_true",
        help="Use the built-in demo backend (no server required).",
    )
    parser.add_argument(
        "--api-url",
        help="Backend base URL (default: API_URL setting).",
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    for name, help_text in (("login", "Sign in as an admin."), ("register", "Create an admin account.")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--email")
        p.add_argument("--password", help="Prompted for when omitted.")

    sub.add_parser("logout", help="Forget the stored session.")
    sub.add_parser("whoami", help="Show the signed-in admin.")
    sub.add_parser("overview", help="Fleet counts.")
    sub.add_parser("devices", help="List devices.")

    p = sub.add_parser("device", help="Show one device.")
    p.add_argument("device_id", metavar="ID")

    p = sub.add_parser("apps", help="List and manage a device's apps.")
    p.add_argument("device_id", metavar="ID")
    p.add_argument("--search", metavar="Q", help="Filter by app or package name.")
    action = p.add_mutually_exclusive_group()
    for flag in ("block", "unblock", "lock", "unlock"):
        action.add_argument(f"--{flag}", metavar="PKG", help=f"{flag.capitalize()} an app (package name or id).")

    p = sub.add_parser("urls", help="List and manage a device's URL blacklist.")
    p.add_argument("device_id", metavar="ID")
    action = p.add_mutually_exclusive_group()
    action.add_argument("--add", metavar="PATTERN", help="Blacklist a URL pattern (* is a wildcard).")
    action.add_argument("--remove", metavar="URL_ID", type=int, help="Remove a blacklist entry.")
    p.add_argument("--description", metavar="D")
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation.")

    p = sub.add_parser("requests", help="List and decide approval requests.")
    p.add_argument("--status", choices=("all", "pending", "approved", "denied"))
    action = p.add_mutually_exclusive_group()
    action.add_argument("--approve", metavar="ID", type=int)
    action.add_argument("--deny", metavar="ID", type=int)
    p.add_argument("--notes", metavar="N")
    p.add_argument("--watch", action="store_true", help="Keep refreshing until interrupted.")

    p = sub.add_parser("violations", help="Show the violation log.")
    p.add_argument("--device", metavar="ID", help="Only this device.")

    p = sub.add_parser("settings", help="Update a device's policy settings.")
    p.add_argument("device_id", metavar="ID")
    p.add_argument("--cooldown-hours", type=int, metavar="N")
    p.add_argument("--require-approval", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--vpn", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--prevent-reset", action=argparse.BooleanOptionalAction, default=None)

    return parser


def build_state(args: argparse.Namespace, settings: Settings | None = None) -> AppState:
    """Create the application state for *args* (demo or real backend)."""
    settings = settings or default_settings
    if args.api_url:
        settings = settings.model_copy(update={"API_URL": args.api_url})
    if not args.demo:
        return AppState(settings)

    from .demo import DemoBackend

    log.info("Using the demo backend.")
    store = SessionStore(
        settings.state_dir / "demo-session.db",
        token_days=settings.TOKEN_COOKIE_DAYS,
    )
    return AppState(settings, store=store, transport=DemoBackend().transport())


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """CLI entry point for the MDM admin dashboard."""
    settings = settings or default_settings
    args = _build_parser().parse_args(argv)
    _setup_logging(verbose=args.verbose, level=settings.LOG_LEVEL)
    cli = DashboardCli(build_state(args, settings), args)
    return _run_cli_loop(cli)


def _run_cli_loop(cli: DashboardCli) -> int:
    """Event-loop setup with graceful Ctrl-C handling.

    Only ``--watch`` turns SIGINT/SIGTERM into a stop request; every other
    command is interrupted by the default handlers.
    """
    loop = asyncio.new_event_loop()

    if cli.watching:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, cli.request_stop)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler for all signals
                signal.signal(sig, lambda s, f: cli.request_stop())

    main_task = loop.create_task(cli.run())
    try:
        return loop.run_until_complete(main_task)
    except KeyboardInterrupt:
        if not main_task.done():
            main_task.cancel()
        loop.run_until_complete(asyncio.gather(main_task, return_exceptions=True))
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        loop.close()


if __name__ == "__main__":
    sys.exit(main())

"""
Hellas Launcher CLI

Thin wrapper around the Launcher facade providing a command-line interface.

Usage:
    hellas status [--json]
    hellas install | update | reinstall
    hellas check [--json]
    hellas launch
    hellas login | logout
    hellas memory [--auto | --custom --min 2048 --max 6144] [--json]
    hellas prefs [--accept-terms] [--no-animation] [--install-dir PATH]
    hellas logs [--tail 100]
    hellas serve [--host 127.0.0.1 --port 8765]

Ctrl+C during install/update/reinstall cancels the operation.
"""

from __future__ import annotations

import json as json_module
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer

from .errors import AuthError, CancelledError, ConcurrencyError, LauncherError, ReadinessError
from .events import TOPIC_INSTALL_STATUS, TOPIC_LAUNCH_STATUS, TOPIC_UPDATE_PROGRESS
from .models import MemorySettings, OperationKind, OperationResult

EXIT_ERROR = 1
EXIT_BUSY = 2
EXIT_CANCELLED = 130

app = typer.Typer(
    name="hellas",
    help="Hellas Launcher - modpack installer and game launcher",
    no_args_is_help=True,
)


def get_launcher():
    """Get a started Launcher instance with file logging configured."""
    from config.settings import get_config

    from ..utils.logging_setup import configure_logging
    from . import Launcher

    config = get_config()
    configure_logging(config.log_dir, config.log_level)
    launcher = Launcher(config)
    launcher.start()
    return launcher


def output_json(data: Any) -> None:
    """Output data as JSON."""
    typer.echo(json_module.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    """Output error message."""
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)


def output_success(message: str) -> None:
    """Output success message."""
    typer.secho(message, fg=typer.colors.GREEN)


def output_warning(message: str) -> None:
    """Output warning message."""
    typer.secho(f"Warning: {message}", fg=typer.colors.YELLOW)


def _print_event(topic: str, payload: Dict[str, Any]) -> None:
    if topic == TOPIC_UPDATE_PROGRESS:
        state = payload.get("state")
        if "progress" in payload and state != "complete":
            typer.echo(f"  {state}: {payload['progress']}%")
        elif state == "fetching-feed":
            typer.echo("  fetching update feed...")
    elif topic in (TOPIC_INSTALL_STATUS, TOPIC_LAUNCH_STATUS):
        level = payload.get("level")
        if level == "error":
            return  # reported once by output_error
        colour = {"success": typer.colors.GREEN, "warning": typer.colors.YELLOW}.get(level)
        typer.secho(payload.get("message", ""), fg=colour)


def _wait(future: Future, on_interrupt: Callable[[], Any], poll: float = 0.2) -> Any:
    """Wait for a future; the first Ctrl+C calls on_interrupt and keeps waiting."""
    interrupted = False
    while True:
        try:
            while not future.done():
                time.sleep(poll)
            return future.result()
        except KeyboardInterrupt:
            if interrupted:
                raise
            interrupted = True
            output_warning("Cancelling...")
            on_interrupt()


def _fail(error: Exception) -> None:
    output_error(str(error))
    if isinstance(error, CancelledError):
        raise typer.Exit(EXIT_CANCELLED)
    if isinstance(error, ConcurrencyError):
        raise typer.Exit(EXIT_BUSY)
    raise typer.Exit(EXIT_ERROR)


def _run_operation(kind: OperationKind, json: bool) -> None:
    launcher = get_launcher()
    unsubscribe = None if json else launcher.events.subscribe(_print_event)
    try:
        future = launcher.submit(kind)
        result: OperationResult = _wait(future, launcher.cancel_update)
    except LauncherError as e:
        _fail(e)
    finally:
        if unsubscribe:
            unsubscribe()
        launcher.close()

    if json:
        output_json(result.model_dump(mode="json"))
    if result.cancelled:
        output_warning(f"{kind.value.capitalize()} cancelled.")
        raise typer.Exit(EXIT_CANCELLED)
    if not json:
        output_success(f"{kind.value.capitalize()} finished (version: {result.version or 'unversioned'})")


# =============================================================================
# Install / Update / Reinstall
# =============================================================================

@app.command("install")
def install(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Install the modpack into the configured install directory."""
    _run_operation(OperationKind.INSTALL, json)


@app.command("update")
def update(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Update an existing installation (mods are replaced, not merged)."""
    _run_operation(OperationKind.UPDATE, json)


@app.command("reinstall")
def reinstall(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    """Delete the install directory and install from scratch."""
    if not yes:
        typer.confirm("This deletes the whole install directory. Continue?", abort=True)
    _run_operation(OperationKind.REINSTALL, json)


# =============================================================================
# Queries
# =============================================================================

@app.command("status")
def status(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show installation, account and update status."""
    launcher = get_launcher()
    try:
        state = launcher.get_state()
    except LauncherError as e:
        _fail(e)
    finally:
        launcher.close()

    if json:
        output_json(state.model_dump(mode="json"))
        return

    inst = state.installation
    typer.echo(f"Install directory: {inst.install_dir}{'' if inst.install_dir_exists else ' (missing)'}")
    typer.echo(f"Installed version: {inst.installed_version or '-'}")
    typer.echo(f"Detected version:  {inst.detected_version or '-'}")
    reqs = inst.requirements
    typer.echo(
        f"Minecraft: {'ok' if reqs.minecraft else 'missing'}  "
        f"Forge: {'ok' if reqs.forge else 'missing'}  "
        f"Modpack: {'ok' if reqs.modpack else 'missing'}"
    )
    typer.echo(f"Account: {state.account.username or '-'}{' (signed in)' if state.account.logged_in else ''}")
    if not state.update.has_update_source:
        output_warning("No update source configured.")
    elif state.update.available:
        output_warning(f"Update available: {state.update.preferred_version}")
    else:
        output_success("Up to date.")


@app.command("check")
def check(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Verify the installation is ready to launch."""
    launcher = get_launcher()
    try:
        report = launcher.check_readiness()
    finally:
        launcher.close()

    if json:
        output_json(report.model_dump(mode="json"))
    elif report.ready:
        output_success(report.message)
        if report.missing:
            names = ", ".join(kind.value for kind in report.missing)
            output_warning(f"Will be downloaded on launch: {names}")
    else:
        output_error(report.message)

    if not report.ready:
        raise typer.Exit(EXIT_ERROR)


@app.command("logs")
def logs(
    tail: int = typer.Option(0, "--tail", "-n", help="Only the last N lines (0 = all)"),
):
    """Print the launcher log."""
    launcher = get_launcher()
    try:
        text = launcher.read_log()
    finally:
        launcher.close()

    lines = text.splitlines()
    if tail > 0:
        lines = lines[-tail:]
    for line in lines:
        typer.echo(line)


# =============================================================================
# Launch
# =============================================================================

@app.command("launch")
def launch():
    """Launch the game (requires 'hellas login')."""
    launcher = get_launcher()
    unsubscribe = launcher.events.subscribe(_print_event)
    try:
        handle = launcher.launch_game()
        result = _wait(handle.future, handle.cancel)
    except ReadinessError as e:
        output_error(str(e))
        raise typer.Exit(EXIT_ERROR)
    except LauncherError as e:
        _fail(e)
    finally:
        unsubscribe()
        launcher.close()

    output_success(f"Game exited normally (Forge {result.launched_with}).")


# =============================================================================
# Accounts
# =============================================================================

@app.command("login")
def login(
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Give up after N seconds"),
):
    """Sign in with a Microsoft account (device code flow)."""
    launcher = get_launcher()
    try:
        code = launcher.start_device_login()
        typer.echo(code.message or f"Open {code.verification_uri} and enter the code {code.user_code}")

        deadline = code.expires_at if timeout is None else min(code.expires_at, time.time() + timeout)
        interval = code.interval
        while time.time() < deadline:
            time.sleep(interval)
            result = launcher.poll_device_login(code.device_code)
            if result.status == "pending":
                continue
            if result.status == "slow_down":
                interval += 5
                continue
            if result.status == "success":
                output_success(f"Signed in as {result.account.username if result.account else '?'}")
                return
            output_error(result.message or "Login failed.")
            raise typer.Exit(EXIT_ERROR)

        output_error("Device code expired. Please start again.")
        raise typer.Exit(EXIT_ERROR)
    except AuthError as e:
        _fail(e)
    finally:
        launcher.close()


@app.command("logout")
def logout():
    """Forget the stored account."""
    launcher = get_launcher()
    try:
        launcher.logout()
    finally:
        launcher.close()
    output_success("Signed out.")


# =============================================================================
# Preferences
# =============================================================================

@app.command("memory")
def memory(
    auto: bool = typer.Option(False, "--auto", help="Use the recommended allocation"),
    custom: bool = typer.Option(False, "--custom", help="Use --min/--max"),
    min_mb: Optional[int] = typer.Option(None, "--min", help="Minimum heap in MB"),
    max_mb: Optional[int] = typer.Option(None, "--max", help="Maximum heap in MB"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show or change the game memory allocation."""
    if auto and custom:
        output_error("Use either --auto or --custom, not both.")
        raise typer.Exit(EXIT_ERROR)

    launcher = get_launcher()
    try:
        if auto or custom:
            current = launcher.get_memory_state().settings
            settings = MemorySettings(
                mode="custom" if custom else "auto",
                min_mb=min_mb if min_mb is not None else current.min_mb,
                max_mb=max_mb if max_mb is not None else current.max_mb,
                jvm_args=current.jvm_args,
            )
            state = launcher.set_memory_settings(settings)
        else:
            state = launcher.get_memory_state()
    finally:
        launcher.close()

    if json:
        output_json(state.model_dump(mode="json", by_alias=True))
        return

    typer.echo(f"Mode: {state.settings.mode}")
    typer.echo(f"System memory: {state.total_mb} MB (recommended {state.recommended_mb} MB)")
    typer.echo(f"Applied: -Xms{state.applied_min_mb}M -Xmx{state.applied_max_mb}M")


@app.command("prefs")
def prefs(
    terms: Optional[bool] = typer.Option(None, "--accept-terms/--decline-terms", help="Server terms"),
    animation: Optional[bool] = typer.Option(None, "--animation/--no-animation", help="Launcher animation"),
    install_dir: Optional[Path] = typer.Option(None, "--install-dir", help="Install root"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show or change launcher preferences."""
    launcher = get_launcher()
    try:
        if install_dir is not None:
            launcher.set_install_dir(install_dir)
        if terms is not None:
            launcher.set_terms_accepted(terms)
        if animation is not None:
            launcher.set_animation_enabled(animation)
        state = launcher.get_state()
    except LauncherError as e:
        _fail(e)
    finally:
        launcher.close()

    if json:
        output_json({
            "installDir": state.installation.install_dir,
            "termsAccepted": state.terms_accepted,
            "animationEnabled": state.animation_enabled,
        })
        return

    typer.echo(f"Install directory: {state.installation.install_dir}")
    typer.echo(f"Terms accepted:    {'yes' if state.terms_accepted else 'no'}")
    typer.echo(f"Animation:         {'on' if state.animation_enabled else 'off'}")


# =============================================================================
# API Server
# =============================================================================

@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8765, "--port", help="Bind port"),
):
    """Serve the HTTP API for a front-end."""
    import uvicorn

    from .api import create_app

    launcher = get_launcher()
    try:
        uvicorn.run(create_app(launcher), host=host, port=port, log_config=None)
    finally:
        launcher.close()


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()

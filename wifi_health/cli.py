"""CLI entry point for wifi-health."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

import wifi_health
from wifi_health.config import (
    VALID_KEYS,
    MonitorConfig,
    parse_value,
    resolve_config,
)
from wifi_health.core.models import SoftwareBuildSnapshot, SystemInfoDecodeError
from wifi_health.data.fingerprint import system_info_key
from wifi_health.data.store import SqliteMemoryStore
from wifi_health.data.system_info import (
    SYSTEM_INFO_DATA_NAME,
    SystemInfoState,
    decode_system_info,
    detect_build_change,
)
from wifi_health.logging_config import setup_logging

app = typer.Typer(
    name="wifi-health",
    help="Post-boot and daily health monitoring for a wireless subsystem.",
    no_args_is_help=True,
)
console = Console()

_DB_OPTION = typer.Option(
    None, "--db", envvar="WIFI_HEALTH_DB", help="Memory store database path"
)

# Changing the seed moves the storage key and orphans the stored record.
_READ_ONLY_KEYS = ("l2-key-seed",)

_SCAN_FAILURE_BITS = (
    (1, "pre-boot 2G"),
    (2, "pre-boot above-2G"),
    (4, "post-boot 2G"),
    (8, "post-boot above-2G"),
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging"
    ),
    log_file: Optional[str] = typer.Option(
        None, "--log-file", help="Also append logs to this file"
    ),
) -> None:
    setup_logging(verbose=verbose, log_file=log_file)


def _resolve_config(store: SqliteMemoryStore) -> MonitorConfig:
    try:
        return resolve_config(store)
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        raise typer.Exit(1)


def _describe_scan_failure(bitmask: int) -> str:
    if not bitmask:
        return "none"
    broken = [label for bit, label in _SCAN_FAILURE_BITS if bitmask & bit]
    return f"{bitmask} ({', '.join(broken)})"


def _format_build(build: Optional[SoftwareBuildSnapshot]) -> str:
    if build is None:
        return "(not set)"
    return (
        f"os={build.os_build_version} stack={build.stack_version} "
        f"driver={build.driver_version} fw={build.firmware_version}"
    )


@app.command()
def show(db: Optional[str] = _DB_OPTION) -> None:
    """Show the persisted system info record."""
    store = SqliteMemoryStore(db_path=db)
    try:
        config = _resolve_config(store)
        key = system_info_key(config.l2_key_seed)
        blob = store.read_blob(key, SYSTEM_INFO_DATA_NAME)
        if blob is None:
            console.print("[yellow]No system info stored yet.[/]")
            raise typer.Exit(0)
        try:
            decoded = decode_system_info(blob)
        except SystemInfoDecodeError as e:
            console.print(f"[red]Stored system info is corrupt: {e}[/]")
            raise typer.Exit(1)

        table = Table(title="System Info")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Key", key)
        table.add_row("Updated", store.last_updated(key, SYSTEM_INFO_DATA_NAME) or "")
        table.add_row("Current build", _format_build(decoded.get("curr_software_build")))
        table.add_row("Previous build", _format_build(decoded.get("prev_software_build")))
        last_scan = decoded.get("last_scan_time_ms")
        table.add_row("Last scan (ms)", "none" if last_scan is None else str(last_scan))
        table.add_row("BSSIDs 2G", str(decoded.get("num_bssid_last_scan_2g", 0)))
        table.add_row(
            "BSSIDs above 2G", str(decoded.get("num_bssid_last_scan_above_2g", 0))
        )
        table.add_row(
            "Scan failure", _describe_scan_failure(decoded.get("scan_failure", 0))
        )
        mobility = decoded.get("mobility_state")
        table.add_row("Mobility", mobility.value if mobility else "unknown")
        console.print(table)
    finally:
        store.close()


@app.command()
def clear(
    db: Optional[str] = _DB_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Factory reset: drop stored build info and scan statistics."""
    from rich.prompt import Confirm

    if not yes and not Confirm.ask("[yellow]Clear all stored health state?[/]"):
        raise typer.Exit(1)

    store = SqliteMemoryStore(db_path=db)
    try:
        config = _resolve_config(store)
        state = SystemInfoState(system_info_key(config.l2_key_seed))
        state.memory_store = store
        state.read_from_memory()
        state.finish_pending_read()
        state.clear_all()
        state.write_to_memory()
    finally:
        store.close()
    console.print("[green]Health state cleared.[/]")


@app.command("build-info")
def build_info(
    db: Optional[str] = _DB_OPTION,
    interface: Optional[str] = typer.Option(
        None, "--interface", "-i", help="Wireless interface (default: auto-detect)"
    ),
) -> None:
    """Show the running software build and whether it differs from the stored one."""
    from wifi_health.core.environment import BuildInfoExtractor, LinuxWifiBackend

    store = SqliteMemoryStore(db_path=db)
    try:
        config = _resolve_config(store)
        backend = LinuxWifiBackend(interface)
        current = BuildInfoExtractor(backend, config.stack_package).extract()
        if current is None:
            console.print("[red]Networking backend unavailable.[/]")
            raise typer.Exit(1)

        persisted = None
        blob = store.read_blob(
            system_info_key(config.l2_key_seed), SYSTEM_INFO_DATA_NAME
        )
        if blob is not None:
            try:
                persisted = decode_system_info(blob).get("curr_software_build")
            except SystemInfoDecodeError as e:
                console.print(f"[yellow]Ignoring corrupt stored record: {e}[/]")
    finally:
        store.close()

    table = Table(title="Software Build")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Interface", backend.interface or "(none)")
    table.add_row("OS build", current.os_build_version)
    table.add_row("Stack version", str(current.stack_version))
    table.add_row("Driver version", current.driver_version or "(unknown)")
    table.add_row("Firmware version", current.firmware_version or "(unknown)")
    console.print(table)

    if persisted is None:
        console.print("[dim]No stored build to compare against.[/]")
    elif detect_build_change(current, persisted):
        console.print(
            f"[yellow]Build changed since last record:[/] {_format_build(persisted)}"
        )
    else:
        console.print("[green]Build unchanged since last record.[/]")


@app.command()
def config(
    action: str = typer.Argument("get", help="Action: get or set"),
    key: Optional[str] = typer.Argument(None, help="Config key"),
    value: Optional[str] = typer.Argument(None, help="Value to set"),
    db: Optional[str] = _DB_OPTION,
) -> None:
    """View or modify configuration."""
    store = SqliteMemoryStore(db_path=db)
    try:
        if action == "get":
            if key:
                val = store.get_config(key)
                if val is not None:
                    console.print(f"{key} = {val}")
                else:
                    console.print(f"[yellow]{key} is not set[/]")
            else:
                for k in VALID_KEYS:
                    val = store.get_config(k)
                    console.print(f"{k} = {val or '(not set)'}")
        elif action == "set":
            if not key or value is None:
                console.print("[red]Usage: wifi-health config set <key> <value>[/]")
                raise typer.Exit(1)
            if key not in VALID_KEYS:
                console.print(
                    f"[red]Unknown config key: {key}. "
                    f"Valid keys: {', '.join(VALID_KEYS)}[/]"
                )
                raise typer.Exit(1)
            if key in _READ_ONLY_KEYS:
                console.print(f"[red]{key} is read-only[/]")
                raise typer.Exit(1)
            field_name = key.replace("-", "_")
            try:
                MonitorConfig(**{field_name: parse_value(field_name, value)})
            except ValueError as e:
                console.print(f"[red]{e}[/]")
                raise typer.Exit(1)
            store.set_config(key, value)
            console.print(f"[green]Set {key} = {value}[/]")
        else:
            console.print("[red]Unknown action. Use 'get' or 'set'.[/]")
            raise typer.Exit(1)
    finally:
        store.close()


@app.command()
def version() -> None:
    """Print version."""
    console.print(f"wifi-health {wifi_health.__version__}")


if __name__ == "__main__":
    app()

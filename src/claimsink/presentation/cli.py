from __future__ import annotations
import asyncio, logging, signal
from datetime import date, datetime
from typing import Optional

import asyncpg
import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.dump_files import dump_path_for
from ..adapters.manifest_jsonl import JSONLRunManifest, read_manifest
from ..adapters.rpc_httpx import LotusRPC
from ..adapters.store_asyncpg import PostgresClaimStore
from ..application.scheduler import Scheduler
from ..application.use_cases import IngestionPipeline
from ..config import Settings
from ..domain.decoding import load_dump_file
from ..domain.errors import ClaimsinkError, FatalInitError, RPCError
from ..domain.models import RunSummary

app = typer.Typer(help="claimsink: idempotent ingestion of Filecoin claim dumps.", no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger("claimsink")

def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level, format="%(message)s", datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )

def _parse_day(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    try:
        return datetime.strptime(s, "%Y%m%d").date()
    except ValueError:
        raise typer.BadParameter(f"expected YYYYMMDD, got {s!r}")

def _load_settings(**overrides: object) -> Settings:
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        err_console.print(f"[bold red]invalid configuration[/]\n{e}")
        raise typer.Exit(code=1)

async def _connect(s: Settings) -> tuple[LotusRPC, PostgresClaimStore]:
    chain = LotusRPC(s.lotus_url, s.lotus_token, timeout_s=s.rpc_timeout_s)
    try:
        await chain.chain_head()
    except (httpx.HTTPError, RPCError) as e:
        await chain.aclose()
        raise FatalInitError(f"connect lotus: {e}") from e
    try:
        store = await PostgresClaimStore.connect(s.database_url, s.claims_table, command_timeout=s.db_command_timeout_s)
    except (OSError, ValueError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        await chain.aclose()
        raise FatalInitError(f"connect postgres: {e}") from e
    try:
        await store.ensure_schema()
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        await store.close(); await chain.aclose()
        raise FatalInitError(f"bootstrap schema: {e}") from e
    return chain, store

def _install_stop(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # no signal handlers on this platform's loop
            break

async def _with_pipeline(s: Settings, body) -> object:
    logger.info("boot %s", s.public_view())
    chain, store = await _connect(s)
    manifest = JSONLRunManifest(s.manifest_path) if s.manifest_path else None
    try:
        return await body(IngestionPipeline(chain=chain, store=store, settings=s, manifest=manifest))
    finally:
        await store.close()
        await chain.aclose()

def _summary_table(res: RunSummary) -> Table:
    t = Table(title=f"run {res.status}", show_header=False)
    t.add_column("field", style="bold"); t.add_column("value")
    for k in ("file", "reason", "active_providers", "records", "decoded", "inactive", "decode_errors",
              "existing_keys", "prepared", "inserted", "batches", "failed_batches", "rejected_rows", "file_removed"):
        t.add_row(k, str(getattr(res, k)))
    t.add_row("took", f"{res.took:.2f}s")
    return t

@app.command()
def run(
    dump_dir: Optional[str] = typer.Option(None, help="Directory holding all_claims_YYYYMMDD.json"),
    batch_size: Optional[int] = typer.Option(None, help="Rows per insert batch"),
    every_hours: Optional[float] = typer.Option(None, help="Hours between runs"),
):
    """Run now, then on a fixed interval until SIGINT/SIGTERM."""
    s = _load_settings(dump_dir=dump_dir, batch_size=batch_size, run_every_hours=every_hours)
    _setup_logging(s.log_level)

    async def main() -> None:
        stop = asyncio.Event()
        _install_stop(stop)

        async def body(pipeline: IngestionPipeline) -> int:
            sched = Scheduler(lambda ev: pipeline.run_once(stop=ev), s.run_interval_s, stop)
            return await sched.serve()

        await _with_pipeline(s, body)
        logger.info("shutting down")

    try:
        asyncio.run(main())
    except FatalInitError as e:
        logger.critical("%s", e)
        raise typer.Exit(code=1)

@app.command()
def once(
    date_: Optional[str] = typer.Option(None, "--date", help="Dump date YYYYMMDD (default: today)"),
    dump_dir: Optional[str] = typer.Option(None, help="Directory holding all_claims_YYYYMMDD.json"),
    batch_size: Optional[int] = typer.Option(None, help="Rows per insert batch"),
):
    """Single ingestion run; exits 1 if the run failed."""
    day = _parse_day(date_)
    s = _load_settings(dump_dir=dump_dir, batch_size=batch_size)
    _setup_logging(s.log_level)

    async def main() -> RunSummary:
        stop = asyncio.Event()
        _install_stop(stop)
        return await _with_pipeline(s, lambda p: p.run_once(day=day, stop=stop))

    try:
        res = asyncio.run(main())
    except FatalInitError as e:
        logger.critical("%s", e)
        raise typer.Exit(code=1)
    console.print(_summary_table(res))
    if res.status == "failed":
        raise typer.Exit(code=1)

@app.command("dump-path")
def dump_path(
    date_: Optional[str] = typer.Option(None, "--date", help="Dump date YYYYMMDD (default: today)"),
    dump_dir: str = typer.Option("", envvar="CLAIMSINK_DUMP_DIR"),
):
    """Print the dump file path a run would look for."""
    typer.echo(dump_path_for(_parse_day(date_) or date.today(), dump_dir))

@app.command()
def inspect(path: str = typer.Argument(..., help="Dump file to decode")):
    """Decode a dump offline (no chain, no store) and print totals."""
    try:
        dec = load_dump_file(path, skip_malformed=True)
    except (ClaimsinkError, OSError) as e:
        err_console.print(f"[bold red]error[/]: {e}")
        raise typer.Exit(code=1)
    providers = {c.provider_id for c in dec.claims}
    console.print(
        f"[bold]records[/]={dec.records}  [green]decoded[/]={len(dec.claims)}  "
        f"[red]decode_errors[/]={dec.decode_errors}  [yellow]providers[/]={len(providers)}"
    )

@app.command()
def runs(
    manifest: str = typer.Option(..., envvar="CLAIMSINK_MANIFEST_PATH", help="JSONL run manifest"),
    last: int = typer.Option(10, help="How many recent runs to show"),
):
    """Show the most recent runs recorded in the manifest."""
    recs = read_manifest(manifest)[-last:] if last > 0 else []
    t = Table("started", "status", "reason", "inserted", "failed", "rejected", "took")
    for r in recs:
        t.add_row(r.get("started", ""), r.get("status", "?"), str(r.get("reason") or ""),
                  str(r.get("inserted", 0)), str(r.get("failed_batches", 0)),
                  str(r.get("rejected_rows", 0)), f"{r.get('took_s', 0.0):.1f}s")
    console.print(t)

if __name__ == "__main__":
    app()

from __future__ import annotations

import contextlib
import io
import sys
from typing import Sequence

import click
import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .cli_shared import (
    DEFAULT_VAULT_BINARY,
    GlobalOpts,
    OpError,
    SubprocessFailure,
    UsageError,
    _bootstrap_env,
    _eprint,
    _resolve_global_opts,
)
from .launcher import ProcessRunner, launch_vault, run_process
from .platform import CfConfigPlatform, Platform, resolve_service
from .rewrite import rewrite_args
from .service_keys import fetch_credentials
from .transport import Transport, _http_request

PROG_NAME = "cf-vault"

USAGE_MISSING_SERVICE = (
    "need at least one-arg, name of the vault instance. "
    "Create with cf create-service hashicorp-vault shared my-vault"
)

app = typer.Typer(
    name=PROG_NAME,
    help="Run the vault CLI against a Vault service broker instance.",
    no_args_is_help=True,
    add_completion=False,
)

_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}", soft_wrap=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{PROG_NAME} {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    return ctx.obj["g"]


@app.callback()
def app_callback(
    ctx: typer.Context,
    cf_home: str | None = typer.Option(
        None,
        "--cf-home",
        help="Directory containing .cf/config.json (env override: CF_HOME)",
    ),
    vault_binary: str | None = typer.Option(
        None,
        "--vault-binary",
        help="Vault CLI executable (env override: CF_VAULT_BINARY, default: vault)",
    ),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    ctx.obj = {"g": _resolve_global_opts(cf_home=cf_home, vault_binary=vault_binary, quiet=quiet)}


def run_vault(
    service_name: str,
    vault_args: Sequence[str],
    *,
    platform: Platform,
    transport: Transport = _http_request,
    runner: ProcessRunner = run_process,
    binary: str = DEFAULT_VAULT_BINARY,
    quiet: bool = False,
) -> int:
    """Resolve ``service_name``, fetch its first service key and run vault with it."""
    instance = resolve_service(platform, service_name)
    token = platform.current_access_token()
    api_base = platform.current_api_endpoint()
    creds = fetch_credentials(
        instance,
        token,
        api_base,
        transport=transport,
        log=None if quiet else _eprint,
    )
    return launch_vault(rewrite_args(vault_args, creds), creds, runner=runner, binary=binary)


@app.command(
    "vault",
    help=(
        "Run vault logged in with the service key of SERVICE_NAME. "
        "Arguments starting with cf_o/, cf_s/ or cf_i/ are expanded to the "
        "organization, space or instance backend path. "
        "Example: cf-vault vault my-vault read cf_i/secret"
    ),
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": ["-h", "--help"],
    },
)
def vault_cmd(
    ctx: typer.Context,
    args: list[str] | None = typer.Argument(
        None,
        metavar="SERVICE_NAME [VAULT_ARGS]...",
        help="Vault service instance name followed by arguments for vault",
    ),
) -> None:
    g = _ctx_global(ctx)
    argv = list(args or []) + list(ctx.args or [])
    if not argv:
        raise UsageError(USAGE_MISSING_SERVICE)
    service_name, vault_args = argv[0], argv[1:]
    platform = CfConfigPlatform.from_cf_home(g.cf_home, transport=_http_request)
    code = run_vault(
        service_name,
        vault_args,
        platform=platform,
        transport=_http_request,
        runner=run_process,
        binary=g.vault_binary,
        quiet=g.quiet,
    )
    raise typer.Exit(code=code)


def _root_help_text(*, root_app: typer.Typer, prog_name: str) -> str:
    buf = io.StringIO()
    try:
        with contextlib.redirect_stdout(buf):
            try:
                root_app(args=["vault", "--help"], prog_name=prog_name, standalone_mode=False)
            except (typer.Exit, click.ClickException):
                pass
    except Exception:
        return ""
    return str(buf.getvalue() or "").strip()


def _render_usage_error_with_help(
    *,
    message: str,
    ctx: click.Context | None = None,
    fallback_help: str = "",
) -> None:
    _rich_error(message)
    help_text = ""
    if isinstance(ctx, click.Context):
        try:
            help_text = str(ctx.get_help() or "").strip()
        except Exception:
            help_text = ""
    if not help_text:
        help_text = str(fallback_help or "").strip()
    if help_text:
        _eprint("")
        _eprint(help_text)


def _subprocess_exit_code(code: int) -> int:
    # Negative return codes mean the child died from a signal.
    if code < 0:
        return 128 - code
    return code or 1


def _run_cli(*, root_app: typer.Typer, prog_name: str, argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    _bootstrap_env()
    try:
        result = root_app(args=argv, prog_name=prog_name, standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        if isinstance(e, click.UsageError):
            _render_usage_error_with_help(message=e.format_message(), ctx=getattr(e, "ctx", None))
            return int(e.exit_code)
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _render_usage_error_with_help(
            message=str(e),
            fallback_help=_root_help_text(root_app=root_app, prog_name=prog_name),
        )
        return 2
    except SubprocessFailure as e:
        _rich_error(str(e))
        return _subprocess_exit_code(e.exit_code)
    except OpError as e:
        _rich_error(str(e))
        return 1
    except (KeyboardInterrupt, click.exceptions.Abort):
        # Click turns an interrupt inside a command into Abort.
        return 130


def main(argv: list[str] | None = None) -> int:
    return _run_cli(root_app=app, prog_name=PROG_NAME, argv=argv)


if __name__ == "__main__":
    raise SystemExit(main())

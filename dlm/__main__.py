"""
Entry point for `dlm` and `python -m dlm`.

Errors that escape a command are rendered as a panel and turned into a
non-zero exit status; an interrupt exits quietly.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from dlm.cli.app import app
from dlm.cli.formatters import format_error_with_suggestions
from dlm.exceptions import DlmError

log = logging.getLogger("dlm")


def _force_utf8_output() -> None:
    # The Windows console defaults to a legacy code page.
    if os.name != "nt":
        return
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass


def main() -> None:
    _force_utf8_output()
    console = Console(stderr=True)

    try:
        app(prog_name="dlm")
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Interrupted; running downloads were left as is.[/]")
        sys.exit(0)
    except DlmError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Unhandled exception", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Main CLI application."""

import typer

from chime.cli.commands import schedule, serve

app = typer.Typer(
    name="chime",
    help="Chime - multi-tenant recurring message scheduler",
    no_args_is_help=True,
)

serve.register(app)
schedule.register(app)


if __name__ == "__main__":
    app()

# patrefresh/main.py
import logging

import typer
from patrefresh.secrets.commands import app as secrets_app
from patrefresh.installations.commands import app as installations_app

app = typer.Typer(help="Keep a repository secret filled with a fresh GitHub App installation token.")
app.add_typer(secrets_app, name="secrets")
app.add_typer(installations_app, name="installations")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log each pipeline step."),
):
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    # Only our loggers go verbose; urllib3 debug lines carry request paths (ids, owner/repo)
    logging.getLogger("patrefresh").setLevel(logging.DEBUG if verbose else logging.NOTSET)


if __name__ == "__main__":
    app()

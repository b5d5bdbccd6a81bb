#!filepath: aspect_engine/cli.py
from typing import Optional

import typer
from rich import print
from rich.table import Table

from aspect_engine import __version__
from aspect_engine.experiment.records import WILDCARD, ExperimentAspect
from aspect_engine.service import ExperimentService
from aspect_engine.utils.errors import AspectFault

app = typer.Typer(help="Experiment aspect engine CLI")

_state: dict = {"config": None}


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="YAML config (default: aspect_engine/config/base.yml)"
    ),
):
    _state["config"] = config


def _service() -> ExperimentService:
    return ExperimentService.from_config_file(_state["config"])


def _fail(e: AspectFault):
    print(f"[red]{e.kind.value} fault: {e.detail}[/red]")
    raise typer.Exit(code=1)


@app.command()
def version():
    print(f"v{__version__}")


@app.command("list")
def list_(
    uid: Optional[str] = typer.Option(None, help="only experiments this user can read"),
    regex: Optional[str] = typer.Option(None, help="eid regex"),
):
    """
    List experiments
    """
    try:
        exps = _service().list_experiments(uid=uid, regex=regex)
    except AspectFault as e:
        _fail(e)

    for exp in exps:
        print(exp.eid)


@app.command()
def show(eid: str):
    """
    Owner, component directory and ACL of an experiment
    """
    try:
        exp = _service().experiment(eid)
        owner = exp.get_owner()
        compdir = exp.get_component_directory()
        acl = exp.get_acl()
    except AspectFault as e:
        _fail(e)

    print(f"[bold]{eid}[/bold]")
    print(f"owner   : {owner}")
    print(f"compdir : {compdir}")
    for m in acl:
        print(f"circle  : {m.circle_id} {', '.join(m.permissions)}")


@app.command()
def aspects(
    eid: str,
    type: Optional[str] = typer.Option(None, "--type", "-t", help="only aspects of this type"),
):
    """
    Aspects stored in an experiment
    """
    patterns = None
    if type is not None:
        patterns = [ExperimentAspect(type=type, sub_type=WILDCARD)]

    try:
        found = _service().experiment(eid).get_aspects(patterns, get_data=False)
    except AspectFault as e:
        _fail(e)

    table = Table(title=eid)
    table.add_column("type")
    table.add_column("subtype")
    table.add_column("name")
    table.add_column("reference")
    for a in found:
        table.add_row(a.type, a.sub_type or "", a.name or "", a.reference or "")
    print(table)


@app.command()
def realize(
    eid: str,
    out: Optional[str] = typer.Option(None, "--out", "-o", help="write the topology here"),
):
    """
    Realize an experiment and print the consensus topology
    """
    try:
        result = _service().realize_experiment(eid)
    except AspectFault as e:
        _fail(e)

    print(f"[green]{eid} realized after {result.rounds} changing rounds[/green]")

    if result.topology is None:
        print("[yellow]no aspect supplied a topology[/yellow]")
        return

    data = result.topology.to_bytes()
    if out:
        with open(out, "wb") as f:
            f.write(data)
        print(f"topology written to {out}")
    else:
        typer.echo(data.decode("utf-8"))


if __name__ == "__main__":
    app()

# python -m aspect_engine.cli realize proj:exp1

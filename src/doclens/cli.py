from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from click.core import ParameterSource
import typer

from doclens.artifacts import dumps, write_json_artifact
from doclens.config import DoclensConfig, load_config, merge_payload, table_section
from doclens.exceptions import DoclensError, InputError
from doclens.pipeline import Workspace, apply as apply_batch, dry_run, run_drift
from doclens.validate import validate_corpus

app = typer.Typer(add_completion=False, help="Documentation drift detection and reorganization.")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

_ROOT = typer.Option(Path("."), "--root", help="Project root holding doclens.toml.")
_CONFIG = typer.Option(None, "--config", help="Explicit doclens.toml path.")
_DOCS_DIR = typer.Option(None, "--docs-dir", help="Docs directory relative to the root.")
_INVENTORY = typer.Option(None, "--inventory", help="Feature inventory JSON.")
_TEMPLATES = typer.Option(None, "--templates", help="Template catalog (YAML or JSON).")
_MANIFEST = typer.Option(None, "--manifest", help="SUMMARY.md or mkdocs.yml.")
_OUTPUT = typer.Option(None, "--output", "-o", help="Write the JSON artifact here.")
_WORKERS = typer.Option(
    4, "--workers", help="Map-stage worker threads; overrides [pipeline].workers."
)
_VERBOSE = typer.Option(False, "--verbose", "-v", help="Debug logging.")
_DOCUMENTS = typer.Argument(None, help="Document ids (corpus-relative, no .md).")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _param_is_command_line(ctx: typer.Context, param: str) -> bool:
    return ctx.get_parameter_source(param) is ParameterSource.COMMANDLINE


def _explicit(ctx: typer.Context, param: str, value: int) -> int | None:
    return value if _param_is_command_line(ctx, param) else None


def _config(
    root: Path,
    config: Optional[Path],
    *,
    workers: Optional[int] = None,
    build_command: Optional[str] = None,
) -> DoclensConfig:
    data = load_config(root=root, config_path=config)
    pipeline = merge_payload(
        {"workers": workers, "build_command": build_command}, table_section(data, "pipeline")
    )
    return DoclensConfig.from_table({**data, "pipeline": pipeline})


def _emit(payload: object, output: Optional[Path]) -> None:
    if output is None:
        typer.echo(dumps(payload), nl=False)
        return
    write_json_artifact(payload, output)
    typer.echo(f"wrote {output}")


def _fail(exc: DoclensError) -> int:
    typer.echo(exc.describe(), err=True)
    return EXIT_USAGE if isinstance(exc, InputError) else EXIT_FAILURE


@app.command()
def drift(
    ctx: typer.Context,
    documents: Optional[List[str]] = _DOCUMENTS,
    feature: Optional[List[str]] = typer.Option(
        None, "--feature", "-f", help="Explicit feature path; repeat for several."
    ),
    root: Path = _ROOT,
    config: Optional[Path] = _CONFIG,
    docs_dir: Optional[str] = _DOCS_DIR,
    inventory: Optional[Path] = _INVENTORY,
    output: Optional[Path] = _OUTPUT,
    workers: int = _WORKERS,
    verbose: bool = _VERBOSE,
) -> None:
    """Report drift between documents and the feature inventory."""
    _configure_logging(verbose)
    code = EXIT_OK
    try:
        settings = _config(root, config, workers=_explicit(ctx, "workers", workers))
        workspace = Workspace.load(root, settings, docs_dir=docs_dir, inventory=inventory)
        if workspace.inventory is None:
            raise InputError(
                "no feature inventory configured",
                phase="drift",
                remedy="pass --inventory or set [paths].inventory",
            )
        reports = run_drift(workspace, documents or (), feature_mapping=feature or None)
        _emit({"reports": [report.as_json_dict() for report in reports]}, output)
        for report in reports:
            typer.echo(
                f"{report.document_id}: {report.quality.value} ({len(report.issues)} issues)",
                err=output is None,
            )
    except DoclensError as exc:
        code = _fail(exc)
    raise typer.Exit(code=code)


@app.command()
def links(
    root: Path = _ROOT,
    config: Optional[Path] = _CONFIG,
    docs_dir: Optional[str] = _DOCS_DIR,
    output: Optional[Path] = _OUTPUT,
    verbose: bool = _VERBOSE,
) -> None:
    """Dump the corpus link graph."""
    _configure_logging(verbose)
    code = EXIT_OK
    try:
        workspace = Workspace.load(root, _config(root, config), docs_dir=docs_dir)
        graph = workspace.corpus.link_graph
        _emit(graph, output)
        for failure in graph.failures():
            typer.echo(failure.describe(), err=True)
        typer.echo(
            f"{len(graph.links)} links, {len(graph.unresolved())} unresolved",
            err=output is None,
        )
    except DoclensError as exc:
        code = _fail(exc)
    raise typer.Exit(code=code)


@app.command()
def plan(
    ctx: typer.Context,
    documents: Optional[List[str]] = _DOCUMENTS,
    template: Optional[str] = typer.Option(None, "--template", help="Force a template by name."),
    root: Path = _ROOT,
    config: Optional[Path] = _CONFIG,
    docs_dir: Optional[str] = _DOCS_DIR,
    templates: Optional[Path] = _TEMPLATES,
    manifest: Optional[Path] = _MANIFEST,
    output: Optional[Path] = _OUTPUT,
    workers: int = _WORKERS,
    verbose: bool = _VERBOSE,
) -> None:
    """Propose reorganizations without touching the filesystem."""
    _configure_logging(verbose)
    code = EXIT_OK
    try:
        workspace = Workspace.load(
            root,
            _config(root, config, workers=_explicit(ctx, "workers", workers)),
            docs_dir=docs_dir,
            templates=templates,
            manifest=manifest,
        )
        result = dry_run(workspace, documents or (), template_name=template)
        _emit(result, output)
        for outcome in result.outcomes:
            if outcome.error is not None:
                typer.echo(outcome.error.describe(), err=True)
            elif outcome.plan is not None:
                proposal = outcome.plan.proposal
                summary = proposal.noop_reason or f"{len(proposal.target_files)} files"
                typer.echo(f"{outcome.document_id}: {summary}", err=output is None)
        code = result.exit_code
    except DoclensError as exc:
        code = _fail(exc)
    raise typer.Exit(code=code)


@app.command()
def apply(
    ctx: typer.Context,
    documents: Optional[List[str]] = _DOCUMENTS,
    template: Optional[str] = typer.Option(None, "--template", help="Force a template by name."),
    build_command: Optional[str] = typer.Option(
        None, "--build-command", help="Site build to run after the commit."
    ),
    root: Path = _ROOT,
    config: Optional[Path] = _CONFIG,
    docs_dir: Optional[str] = _DOCS_DIR,
    inventory: Optional[Path] = _INVENTORY,
    templates: Optional[Path] = _TEMPLATES,
    manifest: Optional[Path] = _MANIFEST,
    output: Optional[Path] = _OUTPUT,
    workers: int = _WORKERS,
    verbose: bool = _VERBOSE,
) -> None:
    """Split documents, update the manifest and links, then validate."""
    _configure_logging(verbose)
    code = EXIT_OK
    try:
        workspace = Workspace.load(
            root,
            _config(
                root,
                config,
                workers=_explicit(ctx, "workers", workers),
                build_command=build_command,
            ),
            docs_dir=docs_dir,
            inventory=inventory,
            templates=templates,
            manifest=manifest,
        )
        result = apply_batch(workspace, documents or (), template_name=template)
        _emit(result, output)
        for outcome in result.outcomes:
            if outcome.error is not None:
                typer.echo(outcome.error.describe(), err=True)
        if result.reduce_error is not None:
            typer.echo(result.reduce_error.describe(), err=True)
        failure = result.report.failure() if result.report else None
        if failure is not None:
            typer.echo(failure.describe(), err=True)
            for suspect in failure.suspects:
                typer.echo(f"  suspect: {suspect}", err=True)
        code = result.exit_code
    except DoclensError as exc:
        code = _fail(exc)
    raise typer.Exit(code=code)


@app.command()
def validate(
    build_command: Optional[str] = typer.Option(
        None, "--build-command", help="Site build command."
    ),
    root: Path = _ROOT,
    config: Optional[Path] = _CONFIG,
    docs_dir: Optional[str] = _DOCS_DIR,
    inventory: Optional[Path] = _INVENTORY,
    output: Optional[Path] = _OUTPUT,
    verbose: bool = _VERBOSE,
) -> None:
    """Run the build and compute coverage for the corpus as it is."""
    _configure_logging(verbose)
    code = EXIT_OK
    try:
        settings = _config(root, config, build_command=build_command)
        workspace = Workspace.load(root, settings, docs_dir=docs_dir, inventory=inventory)
        reports = run_drift(workspace) if workspace.inventory is not None else []
        report = validate_corpus(
            workspace.corpus,
            inventory=workspace.inventory,
            drift_reports=reports,
            build_command=settings.pipeline.build_command,
            build_cwd=root,
            build_timeout=settings.pipeline.build_timeout,
        )
        _emit(report, output)
        failure = report.failure()
        if failure is not None:
            typer.echo(failure.describe(), err=True)
            code = EXIT_FAILURE
    except DoclensError as exc:
        code = _fail(exc)
    raise typer.Exit(code=code)


def main() -> None:
    app()

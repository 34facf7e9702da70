from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

from content_deploy import __version__
from content_deploy.core import (
    ArtifactNotFoundError,
    DataLayout,
    InvalidArgumentError,
    PublishError,
    bind,
    configure_logging,
    get_logger,
    load_settings,
    platform_tag,
)
from content_deploy.pipeline.orchestrator import Orchestrator
from content_deploy.pipeline.types import EventKind, RunStatus, TriggerEvent
from content_deploy.stages.fingerprint import cache_key, fingerprint_manifests
from content_deploy.stages.publish import FsArtifactStore
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

_STATUS_STYLE: dict[RunStatus, str] = {
    RunStatus.DEPLOYED: "green",
    RunStatus.CHECK_PASSED: "green",
    RunStatus.BUILT: "green",
    RunStatus.SKIPPED_SUPERSEDED: "yellow",
    RunStatus.FAILED: "red",
}


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="content-deploy")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Handle one trigger: build, publish and maybe deploy")
    run.add_argument(
        "--github-env",
        action="store_true",
        help="Read the trigger from GITHUB_EVENT_NAME / GITHUB_REF / GITHUB_SHA.",
    )
    run.add_argument("--event", choices=[k.value for k in EventKind], default=None)
    run.add_argument("--branch", default=None)
    run.add_argument("--commit", default=None)
    run.add_argument("--pr-number", type=int, default=None)
    run.add_argument("--json", action="store_true", help="Print the outcome as JSON")

    fp = sub.add_parser("fingerprint", help="Print the dependency fingerprint and cache key")
    fp.add_argument(
        "--manifest",
        action="append",
        dest="manifests",
        help="Dependency manifest (repeatable). Defaults to CONTENT_DEPLOY_MANIFEST_PATHS.",
    )

    art = sub.add_parser("artifact", help="Show and verify a published artifact")
    art.add_argument("artifact_id")

    return p


def _trigger_from_args(args: argparse.Namespace, main_branch: str) -> TriggerEvent:
    if args.github_env:
        return TriggerEvent.from_github_env(os.environ, main_branch=main_branch)
    if not (args.event and args.branch and args.commit):
        raise InvalidArgumentError("run requires --github-env or --event, --branch and --commit")
    return TriggerEvent.create(
        kind=args.event,
        branch=args.branch,
        commit=args.commit,
        main_branch=main_branch,
        pr_number=args.pr_number,
    )


def _cmd_run(args: argparse.Namespace) -> int:
    s = load_settings()
    event = _trigger_from_args(args, s.main_branch)

    console.print(
        Panel.fit(
            Text(
                f"content-deploy - {event.kind.value}\nbranch={event.branch}\ncommit={event.commit}",
                style="bold",
            ),
            title="Run",
        )
    )

    outcome = Orchestrator.from_settings(s).handle(event)

    if args.json:
        console.print_json(json.dumps(outcome.to_dict()))
    else:
        style = _STATUS_STYLE.get(outcome.status, "white")
        tbl = Table(title="Result", show_header=True, box=None)
        tbl.add_row("status", f"[{style}]{outcome.status.value}[/{style}]")
        tbl.add_row("run_id", outcome.run_id)
        tbl.add_row("cache_hit", str(outcome.cache_hit))
        tbl.add_row("artifact", outcome.artifact_id or "-")
        tbl.add_row("deployed", str(outcome.deployed))
        if outcome.page_url:
            tbl.add_row("page_url", outcome.page_url)
        if outcome.failure_kind:
            tbl.add_row("failure", outcome.failure_kind)
        if outcome.stale:
            tbl.add_row("stale", "[yellow]superseded by a newer commit[/yellow]")
        tbl.add_row("report", str(outcome.report_path))
        console.print(tbl)
        if not outcome.ok:
            console.print(Panel(Text(outcome.logs), title="Logs", style="red"))

    return 0 if outcome.ok else 1


def _cmd_fingerprint(args: argparse.Namespace) -> int:
    s = load_settings()
    manifests = [Path(m) for m in args.manifests] if args.manifests else list(s.manifest_paths)
    fp = fingerprint_manifests(manifests)

    tbl = Table(show_header=False, box=None)
    tbl.add_row("fingerprint", fp.value)
    tbl.add_row(
        "cache_key", cache_key(fp, platform=platform_tag(), namespace=s.cache_namespace)
    )
    tbl.add_row("manifests", ", ".join(str(m) for m in manifests))
    console.print(tbl)
    return 0


def _cmd_artifact(args: argparse.Namespace) -> int:
    s = load_settings()
    store = FsArtifactStore(DataLayout(Path(s.data_root)).artifacts_root())
    try:
        artifact = store.retrieve(args.artifact_id)
    except ArtifactNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    tbl = Table(title="Artifact", show_header=False, box=None)
    for k, v in artifact.to_dict().items():
        tbl.add_row(k, str(v))
    try:
        store.verify(artifact)
        tbl.add_row("verified", "[green]yes[/green]")
        rc = 0
    except PublishError as e:
        tbl.add_row("verified", f"[red]no[/red] ({e})")
        rc = 1
    console.print(tbl)
    return rc


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)
    log = get_logger("content_deploy")
    bind(command=args.cmd)

    handlers = {
        "run": _cmd_run,
        "fingerprint": _cmd_fingerprint,
        "artifact": _cmd_artifact,
    }
    try:
        return handlers[args.cmd](args)
    except InvalidArgumentError as e:
        log.error("Invalid arguments", error=str(e))
        console.print(f"[red]{e}[/red]")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Main CLI entry point for the Visual Change Assistant.
"""
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.box import ROUNDED

from change_assistant.api.client import GenerationBackendError, HttpGenerationBackend
from change_assistant.config import API_KEY_ENV, AssistantSettings, load_config, load_env, resolve_api_key
from change_assistant.core.bundle_loader import BundleLoader, ChangeBundle
from change_assistant.core.change_models import (
    ChangeApproach, ChangeAssistantError, ChangeIntent, save_model_to_json
)
from change_assistant.core.events import RecordingEventSink
from change_assistant.core.prompt_builder import PromptContext
from change_assistant.core.reasoning_engine import create_orchestrator

console = Console()

STATUS_STYLE = {True: "[green]✅ PASSED[/green]", False: "[red]❌ FAILED[/red]"}


def _settings(ctx) -> AssistantSettings:
    return AssistantSettings.from_config(ctx.obj['config'])


def _load_bundle(path: str) -> ChangeBundle:
    try:
        return BundleLoader().load_bundle(path)
    except ChangeAssistantError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option('--config', '-c', 'config_path', default="config.yaml", help="Path to config file")
@click.option('--verbose', '-v', is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Visual Change Assistant - confidence-driven code changes from visual edits."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    load_env()
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    try:
        ctx.obj['config'] = load_config(config_path)
        AssistantSettings.from_config(ctx.obj['config'])
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument('bundle')
@click.pass_context
def assess(ctx, bundle):
    """Show the confidence assessment for a request bundle."""
    job = _load_bundle(bundle)
    orchestrator = create_orchestrator(settings=_settings(ctx))
    assessment = orchestrator.assess(job.request, job.impact_analysis, job.target_component, job.repo_model)

    table = Table(title=f"Confidence Assessment: {job.request.id}", box=ROUNDED)
    table.add_column("Factor", style="cyan")
    table.add_column("Score", justify="right")

    f = assessment.factors
    table.add_row("Visual clarity", f"{f.visual_clarity:.0%}")
    table.add_row("Component understanding", f"{f.component_understanding:.0%}")
    table.add_row("Change simplicity", f"{f.change_complexity:.0%}")
    table.add_row("Context completeness", f"{f.context_completeness:.0%}")
    table.add_row("[bold]Overall confidence[/bold]", f"[bold]{assessment.confidence:.1%}[/bold]")
    table.add_row("Risk level", assessment.risk_level.value)
    table.add_row("Recommended approach", assessment.recommended_approach.value)
    table.add_row("Fallbacks", ", ".join(a.value for a in assessment.fallback_strategies) or "none")

    console.print(table)
    console.print(assessment.describe())


@cli.command()
@click.argument('bundle')
@click.pass_context
def preview(ctx, bundle):
    """Dry run: what would happen, without calling the backend."""
    job = _load_bundle(bundle)
    orchestrator = create_orchestrator(settings=_settings(ctx))
    result = orchestrator.dry_run(job.request, job.impact_analysis, job.target_component, job.repo_model)

    console.print(Panel.fit(
        f"[bold cyan]🔍 {job.request.summary()}[/bold cyan]\n"
        f"Approach: [yellow]{result.preview.approach.value}[/yellow] "
        f"(confidence {result.assessment.confidence:.1%})",
        title="Dry Run"
    ))
    console.print(Panel("\n".join(f"• {c}" for c in result.preview.expected_changes),
                        title="Expected Changes", border_style="cyan"))
    console.print(Panel("\n".join(f"• {r}" for r in result.preview.risks),
                        title="Risks", border_style="yellow"))
    console.print(Panel("\n".join(f"• {r}" for r in result.preview.recommendations),
                        title="Recommendations", border_style="green"))


@cli.command()
@click.argument('bundle')
@click.option('--strategy', '-s', type=click.Choice([a.value for a in ChangeApproach]),
              help="Render for this strategy instead of the recommended one")
@click.pass_context
def prompt(ctx, bundle, strategy):
    """Render the generation prompt for a request bundle."""
    job = _load_bundle(bundle)
    orchestrator = create_orchestrator(settings=_settings(ctx))
    assessment = orchestrator.assess(job.request, job.impact_analysis, job.target_component, job.repo_model)

    built = orchestrator.prompt_builder.build(PromptContext(
        intent=ChangeIntent(request=job.request, target_component=job.target_component),
        assessment=assessment,
        impact_analysis=job.impact_analysis,
        repo_context=job.repo_model,
        approach=ChangeApproach(strategy) if strategy else None,
    ))

    console.print(built.content, markup=False, highlight=False)

    table = Table(title="Prompt Metadata", box=ROUNDED)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="yellow")
    for key, value in built.metadata.items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        table.add_row(key, str(value))
    console.print(table)

    if built.metadata.get('exceeds_context_budget'):
        console.print("[yellow]⚠️  Prompt exceeds the configured context budget[/yellow]")


@cli.command()
@click.argument('bundle')
@click.argument('proposed_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx, bundle, proposed_file):
    """Validate a proposed file against a request bundle, offline."""
    job = _load_bundle(bundle)
    orchestrator = create_orchestrator(settings=_settings(ctx))
    assessment = orchestrator.assess(job.request, job.impact_analysis, job.target_component, job.repo_model)

    proposed = Path(proposed_file).read_text(encoding='utf-8')
    intent = ChangeIntent(request=job.request, target_component=job.target_component)
    result = orchestrator.validator.validate(
        job.target_component.content, proposed, intent, assessment, job.impact_analysis)

    m = result.metrics
    console.print(Panel.fit(
        f"{STATUS_STYLE[result.passed]} at [cyan]{result.level.value}[/cyan] level\n"
        f"Confidence: {result.confidence:.1%}\n"
        f"+{m.lines_added} -{m.lines_removed} ~{m.lines_modified} lines (ratio {m.change_ratio:.1%})",
        title="Validation"
    ))

    if result.issues or result.warnings:
        table = Table(title="Findings", box=ROUNDED)
        table.add_column("Severity", style="bold")
        table.add_column("Type", style="cyan")
        table.add_column("Message")
        table.add_column("Suggestion", style="dim")
        for issue in result.issues:
            color = "red" if issue.severity.value == "error" else "yellow"
            table.add_row(f"[{color}]{issue.severity.value}[/{color}]", issue.type.value,
                          issue.message, issue.suggestion or "")
        for warning in result.warnings:
            table.add_row("[yellow]warning[/yellow]", warning.type, warning.message, warning.suggestion or "")
        console.print(table)

    if not result.passed:
        sys.exit(1)


@cli.command()
@click.argument('bundle')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help="Save the result as JSON")
@click.option('--write', is_flag=True, help="Write proposed content to disk when the run succeeds")
@click.option('--trace', is_flag=True, help="Show pipeline events")
@click.pass_context
def run(ctx, bundle, output, write, trace):
    """Run the full pipeline against the configured backend."""
    job = _load_bundle(bundle)
    asyncio.run(_run_async(ctx.obj['config'], job, output, write, trace))


async def _run_async(config: dict, job: ChangeBundle, output: Optional[str], write: bool, trace: bool):
    """Async wrapper for run command."""
    sink = RecordingEventSink() if trace else None
    try:
        async with HttpGenerationBackend(config=config) as backend:
            orchestrator = create_orchestrator(backend=backend, settings=AssistantSettings.from_config(config),
                                               sink=sink)
            with console.status("[bold green]Generating and validating change..."):
                result = await orchestrator.run(job.request, job.impact_analysis,
                                                job.target_component, job.repo_model)
    except (ChangeAssistantError, GenerationBackendError) as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        sys.exit(1)

    console.print(Panel(result.summary, title=f"Change {job.request.id}",
                        border_style="green" if result.success else "red"))

    if sink is not None:
        _print_trace(sink)

    if output:
        save_model_to_json(result, Path(output))
        console.print(f"[green]💾 Result saved to {output}[/green]")

    if write:
        if result.success:
            for change in result.file_changes:
                Path(change.file_path).write_text(change.new_content, encoding='utf-8')
                console.print(f"[green]✏️  Wrote {change.file_path}[/green]")
        else:
            console.print("[yellow]⚠️  Nothing written: the change did not pass validation[/yellow]")

    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument('batch_file')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help="Save the batch result as JSON")
@click.pass_context
def batch(ctx, batch_file, output):
    """Run every bundle in a batch file concurrently."""
    try:
        jobs = BundleLoader().load_batch(batch_file)
    except ChangeAssistantError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    asyncio.run(_batch_async(ctx.obj['config'], jobs, output))


async def _batch_async(config: dict, jobs, output: Optional[str]):
    """Async wrapper for batch command."""
    try:
        async with HttpGenerationBackend(config=config) as backend:
            orchestrator = create_orchestrator(backend=backend, settings=AssistantSettings.from_config(config))
            with console.status(f"[bold green]Processing {len(jobs)} requests..."):
                result = await orchestrator.process_batch(jobs)
    except GenerationBackendError as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        sys.exit(1)

    table = Table(title="Batch Results", box=ROUNDED)
    table.add_column("Request", style="cyan")
    table.add_column("Status")
    table.add_column("Strategy")
    table.add_column("Confidence", justify="right")
    table.add_column("Error", style="dim")
    for item in result.results:
        strategy = item.execution.strategy_used.value if item.execution else "-"
        confidence = f"{item.assessment.confidence:.1%}" if item.assessment else "-"
        table.add_row(item.request_id, STATUS_STYLE[item.success], strategy, confidence, item.error or "")
    console.print(table)
    console.print(
        f"Overall confidence {result.overall_confidence:.1%}, risk {result.overall_risk.value}, "
        f"approach {result.recommended_approach.value}"
    )

    if output:
        save_model_to_json(result, Path(output))
        console.print(f"[green]💾 Batch result saved to {output}[/green]")

    if not result.success:
        sys.exit(1)


@cli.command()
@click.pass_context
def capabilities(ctx):
    """Show what the assistant can do."""
    info = create_orchestrator(settings=_settings(ctx)).capabilities()

    table = Table(title="Strategies", box=ROUNDED)
    table.add_column("Approach", style="cyan")
    table.add_column("Min confidence", justify="right")
    table.add_column("Steps")
    table.add_column("Validation", style="yellow")
    for name, strategy in info['strategies'].items():
        table.add_row(name, f"{strategy['threshold']:.0%}", " → ".join(strategy['steps']),
                      strategy['validation_level'])
    console.print(table)

    console.print(Panel("\n".join(f"• {item}" for item in info['intelligence']), title="Intelligence"))
    console.print(Panel(
        f"Levels: {', '.join(info['validation']['levels'])}\n"
        f"Checks: {', '.join(info['validation']['checks'])}\n"
        f"Intent reflection: {', '.join(info['validation']['reflection'])}",
        title="Validation"
    ))
    console.print(Panel("\n".join(f"• {item}" for item in info['features']), title="Features"))


@cli.command()
@click.option('--show-key', is_flag=True, help="Show full API key (be careful!)")
@click.pass_context
def config(ctx, show_key):
    """Show the effective configuration."""
    config_data = ctx.obj['config']

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")

    api_key = resolve_api_key(config_data)
    if api_key:
        if show_key:
            table.add_row(API_KEY_ENV, api_key)
        else:
            masked = "•" * max(len(api_key) - 4, 0) + api_key[-4:]
            table.add_row(API_KEY_ENV, masked)
    else:
        table.add_row(API_KEY_ENV, "[red]NOT SET[/red]")

    for section, settings in config_data.items():
        if isinstance(settings, dict):
            for key, value in settings.items():
                if key == 'api_key':
                    continue
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(settings))

    if not Path(ctx.obj['config_path']).exists():
        table.add_row(ctx.obj['config_path'], "[yellow]NOT FOUND (defaults)[/yellow]")

    console.print(table)


def _print_trace(sink: RecordingEventSink):
    table = Table(title="Pipeline Events", box=ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Message")
    table.add_column("Data", style="dim")
    for event in sink.events:
        data = ", ".join(f"{k}={v}" for k, v in event.data.items())
        table.add_row(event.timestamp.strftime("%H:%M:%S"), event.kind, event.message, data)
    console.print(table)


if __name__ == "__main__":
    cli()

import json

import click
from pathlib import Path

from . import __version__
from .config import Config
from .engine import DatasetEngine
from .exceptions import DatalabError, TaskCancelled
from .utils.logger import setup_logger, tail_log
from .utils.progress import RichProgressReporter

@click.group()
@click.option('--config', '-c', type=click.Path(), default='config.yaml',
              help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool):
    """Datalab - curate instruction datasets for LLM training."""
    ctx.ensure_object(dict)

    config_path = Path(config)
    if config_path.exists():
        ctx.obj['config'] = Config.from_yaml(config_path)
    else:
        ctx.obj['config'] = Config()

    log_level = "DEBUG" if verbose else ctx.obj['config'].log_level
    logger = setup_logger(log_level, ctx.obj['config'].log_file)
    ctx.obj['logger'] = logger

    logger.debug(f"Datalab v{__version__}")
    if config_path.exists():
        logger.info(f"Config loaded from: {config_path}")


def _engine(ctx: click.Context) -> DatasetEngine:
    config = ctx.obj['config']
    engine = DatasetEngine(config.engine)
    engine.set_field_map(config.field_map)
    return engine


def _fail(ctx: click.Context, action: str, error: Exception):
    ctx.obj['logger'].error(f"{action} failed: {error}")
    raise click.ClickException(str(error))


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'jsonl', 'csv']),
              help='Override format detection')
@click.pass_context
def inspect(ctx: click.Context, path: str, fmt: str):
    """Import a dataset and show its summary and field mapping."""
    engine = _engine(ctx)
    try:
        dataset = engine.import_dataset(path, fmt)
    except DatalabError as e:
        _fail(ctx, "Import", e)

    click.echo(f"Dataset:  {dataset.source_path} ({dataset.format.value}, {dataset.size_bytes} bytes)")
    click.echo(f"Records:  {dataset.record_count}")
    click.echo(f"Fields:   {', '.join(dataset.fields)}")
    click.echo("Mapping:")
    for role, name in engine.field_map.model_dump().items():
        click.echo(f"  {role:<12} {name or '-'}")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--field', required=True, help='Field to count values of')
@click.pass_context
def categories(ctx: click.Context, path: str, field: str):
    """List category values of a field, most frequent first."""
    engine = _engine(ctx)
    try:
        engine.import_dataset(path)
        counts = engine.list_categories(field)
    except DatalabError as e:
        _fail(ctx, "Category listing", e)

    for item in counts:
        click.echo(f"{item.count:>8}  {item.name}")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--view', type=click.Choice(['all', 'filtered', 'selected', 'removed']),
              default='selected', help='View to show')
@click.option('--page', type=int, default=1, help='Page number (1-based)')
@click.option('--page-size', type=int, default=20, help='Records per page')
@click.option('--distill/--no-distill', default=True, help='Run distillation before previewing')
@click.pass_context
def preview(ctx: click.Context, path: str, view: str, page: int, page_size: int, distill: bool):
    """Filter (and distill) a dataset, then print one page of a view."""
    config = ctx.obj['config']
    engine = _engine(ctx)
    try:
        engine.import_dataset(path)
        engine.apply_filters(config.filters)
        if distill:
            engine.preview_distillation(config.distill)
        result = engine.get_preview(view, page, page_size)
    except DatalabError as e:
        _fail(ctx, "Preview", e)

    pages = -(-result.total_count // result.page_size)
    click.echo(f"{view}: page {result.page}/{max(pages, 1)} ({result.total_count} records)")
    for item in result.items:
        click.echo(f"\n#{item.id}")
        for cell in item.fields:
            if cell.kind == "structured":
                click.echo(f"  {cell.name}:")
                for entry in cell.entries:
                    click.echo(f"    {entry.name}: {entry.value}")
            else:
                click.echo(f"  {cell.name} [{cell.kind}]: {cell.value}")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', required=True, type=click.Path(), help='Export destination')
@click.option('--view', type=click.Choice(['all', 'filtered', 'selected', 'removed']),
              default='selected', help='View to export')
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'jsonl', 'csv']),
              help='Export format (default: from output extension)')
@click.option('--exclude', type=int, multiple=True, help='Record id to deselect by hand')
@click.option('--include', type=int, multiple=True, help='Record id to select by hand')
@click.pass_context
def run(ctx: click.Context, path: str, output: str, view: str, fmt: str, exclude: tuple, include: tuple):
    """Run import, filter, distill and export in one go."""
    config = ctx.obj['config']
    logger = ctx.obj['logger']
    engine = _engine(ctx)

    try:
        with RichProgressReporter() as reporter:
            engine.subscribe(reporter)
            dataset = engine.import_dataset(path)
            filter_summary = engine.apply_filters(config.filters)
            distill_summary = engine.preview_distillation(config.distill)
            changes = [{"id": i, "include": False} for i in exclude]
            changes += [{"id": i, "include": True} for i in include]
            if changes:
                distill_summary = engine.update_manual_selection(changes)
            engine.export(view, output, fmt)
    except TaskCancelled:
        raise click.ClickException("Cancelled")
    except DatalabError as e:
        _fail(ctx, "Pipeline", e)

    logger.info(
        f"Records: {dataset.record_count} imported, {filter_summary.filtered_count} kept "
        f"({filter_summary.duplicates_removed} duplicates), {distill_summary.selected_count} selected"
    )
    logger.success("Pipeline completed successfully")


@cli.command(name='init-config')
@click.argument('path', type=click.Path(dir_okay=False), default='config.yaml')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
@click.pass_context
def init_config(ctx: click.Context, path: str, force: bool):
    """Write the default configuration to PATH."""
    target = Path(path)
    if target.exists() and not force:
        raise click.ClickException(f"{target} already exists (use --force to overwrite)")
    Config().to_yaml(target)
    ctx.obj['logger'].success(f"Wrote default configuration to {target}")


@cli.command()
@click.option('--limit', type=int, default=50, help='Number of lines to show')
@click.option('--json', 'as_json', is_flag=True, help='Print as a JSON array')
@click.pass_context
def logs(ctx: click.Context, limit: int, as_json: bool):
    """Show the tail of the configured log file."""
    log_file = ctx.obj['config'].log_file
    if log_file is None:
        raise click.ClickException("No log_file configured")
    lines = tail_log(log_file, limit)
    if as_json:
        click.echo(json.dumps(lines, ensure_ascii=False))
    else:
        for line in lines:
            click.echo(line)

def main():
    cli()

if __name__ == '__main__':
    main()

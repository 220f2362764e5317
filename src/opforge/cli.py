"""CLI entry point for opforge."""

from pathlib import Path

import click

from opforge.combiner.combiner import SpecCombiner, parse_service_prefixes
from opforge.combiner.config import CombinerConfig
from opforge.errors import ConfigError, OpforgeError
from opforge.generator import GeneratorConfig, OperationGenerator
from opforge.logging_config import configure_logging

FORMAT_CHOICE = click.Choice(["yaml", "json"], case_sensitive=False)


def _split_tags(values: tuple[str, ...]) -> list[str]:
    """Flatten repeated, comma-separated tag options."""
    return [tag.strip() for value in values for tag in value.split(",") if tag.strip()]


def _echo_stats(title: str, stats: dict) -> None:
    click.echo(f"\n{title}:")
    for key, value in stats.items():
        click.echo(f"  {key.replace('_', ' ').capitalize()}: {value}")


@click.group()
def main():
    """opforge - describe HTTP operations in Python and emit OpenAPI 3.1."""
    pass


@main.command()
@click.option("-i", "--input", "input_dir", default=".", type=click.Path(path_type=Path), help="Directory to scan for operations.")
@click.option("-o", "--output", default="openapi.yaml", type=click.Path(path_type=Path), help="Output file path.")
@click.option("-f", "--format", "fmt", default="yaml", type=FORMAT_CHOICE, help="Output format.")
@click.option("-t", "--title", default="", help="API title (derived from the input directory when omitted).")
@click.option("-V", "--version", "api_version", default="1.0.0", help="API version.")
@click.option("-d", "--description", default="", help="API description.")
@click.option("-s", "--server", "servers", multiple=True, help="Server URL (repeatable).")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output.")
def generate(input_dir: Path, output: Path, fmt: str, title: str, api_version: str,
             description: str, servers: tuple[str, ...], verbose: bool):
    """Scan Python modules for operations and write an OpenAPI document."""
    configure_logging(verbose)
    config = GeneratorConfig(
        input_dir=str(input_dir),
        output_file=str(output),
        format=fmt.lower(),
        title=title,
        version=api_version,
        description=description,
        servers=list(servers),
    )
    gen = OperationGenerator(config)
    try:
        gen.scan_operations()
        target = gen.write_spec()
    except OpforgeError as err:
        raise click.ClickException(str(err)) from err

    click.echo(f"Generated OpenAPI spec: {target}")
    if verbose:
        _echo_stats("Statistics", gen.stats.model_dump())


@main.command()
@click.argument("files", nargs=-1, type=click.Path(path_type=Path))
@click.option("-o", "--output", default="combined-api.yaml", type=click.Path(path_type=Path), help="Output file path.")
@click.option("-f", "--format", "fmt", default="yaml", type=FORMAT_CHOICE, help="Output format.")
@click.option("-t", "--title", default="Combined API", help="Combined API title.")
@click.option("-V", "--version", "api_version", default="1.0.0", help="Combined API version.")
@click.option("-b", "--base-url", default="", help="Base URL prepended to every path.")
@click.option("-c", "--config", "config_file", default=None, type=click.Path(path_type=Path), help="Services config YAML.")
@click.option("-p", "--prefix", "prefixes", multiple=True, help="Service path prefix as service:/prefix (repeatable).")
@click.option("--include-tags", multiple=True, help="Only keep operations with these tags (comma-separated).")
@click.option("--exclude-tags", multiple=True, help="Drop operations with these tags (comma-separated).")
@click.option("--merge-schemas/--no-merge-schemas", default=True, help="Deduplicate component schemas.")
@click.option("--validate/--no-validate", default=True, help="Validate the combined document.")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output.")
def combine(files: tuple[Path, ...], output: Path, fmt: str, title: str, api_version: str, base_url: str,
            config_file: Path | None, prefixes: tuple[str, ...], include_tags: tuple[str, ...],
            exclude_tags: tuple[str, ...], merge_schemas: bool, validate: bool, verbose: bool):
    """Merge several OpenAPI documents into one."""
    configure_logging(verbose)
    if not files and config_file is None:
        raise click.UsageError("provide input spec files or --config")

    try:
        service_prefix = parse_service_prefixes(prefixes)
    except ConfigError as err:
        raise click.BadParameter(str(err), param_hint="'-p' / '--prefix'") from err

    config = CombinerConfig(
        input_files=[str(path) for path in files],
        output_file=str(output),
        format=fmt.lower(),
        title=title,
        version=api_version,
        base_url=base_url,
        config_file=str(config_file) if config_file else "",
        service_prefix=service_prefix,
        include_tags=_split_tags(include_tags),
        exclude_tags=_split_tags(exclude_tags),
        merge_schemas=merge_schemas,
        validate_output=validate,
    )
    try:
        combiner = SpecCombiner(config)
        combiner.run()
    except OpforgeError as err:
        raise click.ClickException(str(err)) from err

    click.echo(f"Combined {combiner.stats.services_combined} service(s) into {combiner.config.output_file}")
    if verbose:
        _echo_stats("Combination statistics", combiner.stats.model_dump())


if __name__ == "__main__":
    main()

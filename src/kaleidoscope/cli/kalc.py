"""
kalc - Kaleidoscope Compiler Command-Line Interface
===================================================

Usage Examples
--------------
Check a program (parse and validate all prototypes and calls):
    $ kalc avg.kal

Dump tokens to avg.lex / the syntax tree to avg.ast:
    $ kalc avg.kal --stage lex
    $ kalc avg.kal --stage ast -o build/

Run the program's 'run' function:
    $ kalc avg.kal --stage run 1 2
    Result: 1.500000

Negative arguments need '--' in front of them:
    $ kalc avg.kal --stage run -- -1 2
"""

import logging
from pathlib import Path
from typing import Optional

import click

from kaleidoscope import __version__
from kaleidoscope.cli.errors import handle_cli_exception
from kaleidoscope.compiler import KaleidoscopeCompiler, CompilerOptions, Stage


@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument("args", nargs=-1, type=float)
@click.option(
    "-o", "--output-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory for .lex/.ast dumps (default: input file directory)",
)
@click.option(
    "-s", "--stage",
    type=click.Choice([stage.value for stage in Stage], case_sensitive=False),
    default=None,
    help="How far to run the pipeline (default: check)",
)
@click.option(
    "-f", "--function",
    "run_function",
    default=None,
    help="Function called by the run stage (default: run)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="kalc")
def main(
    input_file: Path,
    args: tuple[float, ...],
    output_path: Optional[Path],
    stage: Optional[str],
    run_function: Optional[str],
    verbose: bool,
) -> None:
    """
    Compile a Kaleidoscope source file.

    INPUT_FILE is the Kaleidoscope source (.kal). ARGS are the numeric
    arguments passed to the entry function in the run stage.

    \b
    Stages:
        lex     write INPUT.lex, one token per line
        ast     write INPUT.ast, the syntax tree dump
        check   validate prototypes and calls
        run     check, then call the entry function with ARGS
    """
    try:
        options = CompilerOptions.from_env()
        if stage is not None:
            options.stage = Stage(stage.lower())
        if output_path is not None:
            options.output_path = output_path
        if run_function is not None:
            options.run_function = run_function
        options.verbose = verbose or options.verbose

        if options.stage is not Stage.RUN:
            if args:
                raise click.BadParameter(
                    "arguments are only used by the run stage", param_hint="ARGS"
                )
            if run_function is not None:
                raise click.BadParameter(
                    "only used by the run stage", param_hint="'--function'"
                )

        logging.basicConfig(
            level=logging.DEBUG if options.verbose else logging.WARNING,
            format="%(name)s: %(message)s",
        )

        compiler = KaleidoscopeCompiler(options)

        if options.verbose:
            click.echo(f"Compiling {input_file} (stage: {options.stage.value})...")

        if options.stage in (Stage.LEX, Stage.AST):
            output_file = compiler.write_dump(input_file)
            click.echo(f"Wrote {output_file}")
            return

        result = compiler.compile_file(input_file)

        if options.stage is Stage.CHECK:
            click.echo(
                f"Checked {input_file}: {len(result.functions)} functions, "
                f"{len(result.defined_functions)} defined"
            )
            return

        value = compiler.run(result, list(args))
        click.echo(f"Result: {value:f}")

    except Exception as e:
        handle_cli_exception(e, verbose)


if __name__ == "__main__":
    main()

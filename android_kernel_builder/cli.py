"""Thin CLI wrapper for android_kernel_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from android_kernel_builder import __version__
from android_kernel_builder.config import get_settings, print_settings_json
from android_kernel_builder.logging_config import configure_logging

app = typer.Typer(
    name="akb",
    help="Android Kernel Builder - build, package and publish Android kernels in CI",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"android-kernel-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Log level (defaults to AKB_LOG_LEVEL or INFO)"),
    ] = None,
) -> None:
    """Android Kernel Builder - build, package and publish Android kernels in CI."""
    configure_logging(log_level or get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Home directory:      {settings.home_dir}")
        console.print(f"  Workspace directory: {settings.workspace_dir}")
        console.print(f"  Resources directory: {settings.resources_dir}")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print()
        console.print("[bold]GitHub:[/bold]")
        console.print(f"  Repository:          {settings.github_repository or '(not set)'}")
        console.print(f"  Commit:              {settings.github_sha or '(not set)'}")
        console.print(f"  Token:               {'(set)' if settings.github_token else '(not set)'}")
        console.print(f"  API URL:             {settings.github_api_url}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  ccache max size:     {settings.ccache_max_size}")
        console.print(f"  Releases kept:       {settings.keep_releases}")
        console.print(f"  magiskboot URL:      {settings.magiskboot_url or '(bundled)'}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Download timeout:    {settings.download_timeout}")
        console.print(f"  Build timeout:       {settings.build_timeout or '(none)'}")


@app.command()
def build(
    profile_path: Annotated[
        Path | None,
        typer.Option("--profile", "-p", help="Build profile (YAML or JSON)"),
    ] = None,
    kernel_url: Annotated[str | None, typer.Option("--kernel-url", help="Kernel repository URL")] = None,
    kernel_branch: Annotated[str | None, typer.Option("--kernel-branch", help="Kernel branch")] = None,
    arch: Annotated[str | None, typer.Option("--arch", help="Kernel architecture")] = None,
    defconfig: Annotated[str | None, typer.Option("--config", help="Defconfig name")] = None,
    extra_make_args: Annotated[
        str | None,
        typer.Option("--extra-make-args", help='Extra make arguments as a JSON array, e.g. \'["V=1"]\''),
    ] = None,
    anykernel3: Annotated[
        bool | None,
        typer.Option("--anykernel3/--bootimg", help="Package as AnyKernel3 flasher or boot.img"),
    ] = None,
    bootimg_url: Annotated[str | None, typer.Option("--bootimg-url", help="Stock boot.img URL")] = None,
    release: Annotated[
        bool | None,
        typer.Option("--release/--no-release", help="Publish a GitHub release"),
    ] = None,
    use_ccache: Annotated[bool | None, typer.Option("--ccache/--no-ccache", help="Use ccache")] = None,
    check_env: Annotated[
        bool | None,
        typer.Option("--check-env/--no-check-env", help="Require a GitHub Actions Linux runner"),
    ] = None,
    install_deps: Annotated[
        bool | None,
        typer.Option("--install-deps/--no-install-deps", help="Install system packages"),
    ] = None,
    cleanup: Annotated[
        bool | None,
        typer.Option("--cleanup/--no-cleanup", help="Remove sources and outputs afterwards"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build, package and publish a kernel."""
    from pydantic import ValidationError

    from android_kernel_builder.pipeline import PipelineError, run_pipeline
    from android_kernel_builder.profile import BuildProfile, load_profile_data

    overrides: dict[str, Any] = {
        key: value
        for key, value in {
            "kernel_url": kernel_url,
            "kernel_branch": kernel_branch,
            "arch": arch,
            "config": defconfig,
            "extra_make_args": extra_make_args,
            "anykernel3": anykernel3,
            "bootimg_url": bootimg_url,
            "release": release,
            "ccache": use_ccache,
            "check_environment": check_env,
            "install_dependencies": install_deps,
            "cleanup": cleanup,
        }.items()
        if value is not None
    }

    try:
        data = load_profile_data(profile_path) if profile_path else {}
        data.update(overrides)
        profile = BuildProfile.model_validate(data)
    except FileNotFoundError:
        console.print(f"[red]File not found: {profile_path}[/red]")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print("[red]Invalid build inputs:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Invalid build inputs: {e}[/red]")
        raise typer.Exit(code=1) from None

    try:
        result = run_pipeline(profile, get_settings())
    except PipelineError as e:
        console.print(f"[red]{e}[/red]")
        if e.analysis is not None and e.analysis.has_errors:
            console.print(f"  See {e.analysis.log_path} for the full build log")
        raise typer.Exit(code=1) from None
    except Exception as e:
        console.print(f"[red]Build failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = {
            "kernel_version": str(result.kernel_version),
            "output": str(result.output),
            "artifact": result.artifact,
            "release_url": result.release_url,
        }
        console.print(json.dumps(output, indent=2))
    else:
        console.print(f"[green]✓ Kernel {result.kernel_version} built[/green]")
        console.print(f"  Output: {result.output}")
        if result.artifact:
            console.print(f"  Artifact: {result.artifact}")
        if result.release_url:
            console.print(f"  Release: {result.release_url}")


@app.command("analyze-log")
def analyze_log(
    log_path: Annotated[Path, typer.Argument(help="Build log to analyze")],
    marker: Annotated[
        Path,
        typer.Option("--marker", help="File created when errors are found"),
    ] = Path("have_error"),
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit with code 1 when errors are found"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Classify the errors of a kernel build log."""
    from android_kernel_builder.builds.diagnostics import LogNotFoundError, analyze_errors

    try:
        analysis = analyze_errors(log_path, marker)
    except LogNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = [
            {
                "number": d.number,
                "line_number": d.line_number,
                "category": d.category,
                "suggestion": d.suggestion,
                "line": d.line,
            }
            for d in analysis.diagnostics
        ]
        console.print(json.dumps(output, indent=2))
    elif analysis.has_errors:
        table = Table(title=f"Errors in {log_path}")
        table.add_column("#", justify="right")
        table.add_column("Line", justify="right")
        table.add_column("Category", style="red")
        table.add_column("Suggestion")
        for d in analysis.diagnostics:
            table.add_row(str(d.number), str(d.line_number), d.category, d.suggestion)
        console.print(table)
    else:
        console.print("[green]No errors found[/green]")

    if strict and analysis.has_errors:
        raise typer.Exit(code=1)


@app.command("filter-args")
def filter_args(
    args: Annotated[list[str] | None, typer.Argument(help="make arguments to filter")] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Drop make arguments that override compiler or build variables."""
    from android_kernel_builder.builds.make_args import filter_make_args

    kept = filter_make_args(args or [])
    if json_output:
        console.print(json.dumps(kept))
    else:
        for arg in kept:
            console.print(arg, markup=False, highlight=False)


toolchain_app = typer.Typer(help="Manage toolchains")
app.add_typer(toolchain_app, name="toolchain")


@toolchain_app.command("setup")
def toolchain_setup(
    aosp_clang: Annotated[bool, typer.Option("--aosp-clang", help="Install AOSP Clang")] = False,
    aosp_clang_version: Annotated[
        str, typer.Option("--aosp-clang-version", help="AOSP Clang revision, e.g. r487747c")
    ] = "",
    aosp_gcc: Annotated[bool, typer.Option("--aosp-gcc", help="Install AOSP GCC 4.9")] = False,
    android_version: Annotated[
        str, typer.Option("--android-version", help="Android release of the prebuilts")
    ] = "",
    clang_url: Annotated[str, typer.Option("--clang-url", help="Third-party Clang URL")] = "",
    clang_branch: Annotated[str, typer.Option("--clang-branch", help="Third-party Clang branch")] = "",
    gcc64_url: Annotated[str, typer.Option("--gcc64-url", help="Third-party GCC 64 URL")] = "",
    gcc64_branch: Annotated[str, typer.Option("--gcc64-branch", help="Third-party GCC 64 branch")] = "",
    gcc32_url: Annotated[str, typer.Option("--gcc32-url", help="Third-party GCC 32 URL")] = "",
    gcc32_branch: Annotated[str, typer.Option("--gcc32-branch", help="Third-party GCC 32 branch")] = "",
    system_clang: Annotated[
        bool, typer.Option("--system-clang", help="Install the distribution Clang instead")
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Download and normalize toolchains."""
    import httpx

    from android_kernel_builder.host import install_system_clang
    from android_kernel_builder.process import CommandRunner
    from android_kernel_builder.toolchain.service import get_system_toolchain_paths, setup_toolchains
    from android_kernel_builder.types import ToolchainConfig

    settings = get_settings()
    runner = CommandRunner()

    try:
        if system_clang:
            install_system_clang(runner)
            paths = get_system_toolchain_paths()
        else:
            config = ToolchainConfig(
                aosp_clang=aosp_clang,
                aosp_clang_version=aosp_clang_version,
                aosp_gcc=aosp_gcc,
                android_version=android_version,
                other_clang_url=clang_url,
                other_clang_branch=clang_branch,
                other_gcc64_url=gcc64_url,
                other_gcc64_branch=gcc64_branch,
                other_gcc32_url=gcc32_url,
                other_gcc32_branch=gcc32_branch,
            )
            with httpx.Client(timeout=settings.download_timeout) as client:
                paths = setup_toolchains(runner, client, config, settings.home_dir)
    except Exception as e:
        console.print(f"[red]Failed to set up toolchains: {e}[/red]")
        raise typer.Exit(code=1) from None

    output = {
        "clang_path": str(paths.clang_path) if paths.clang_path else None,
        "gcc64_path": str(paths.gcc64_path) if paths.gcc64_path else None,
        "gcc32_path": str(paths.gcc32_path) if paths.gcc32_path else None,
        "gcc64_prefix": paths.gcc64_prefix,
        "gcc32_prefix": paths.gcc32_prefix,
    }
    if json_output:
        console.print(json.dumps(output, indent=2))
    else:
        console.print("[green]✓ Toolchains ready[/green]")
        for key, value in output.items():
            console.print(f"  {key}: {value or '-'}")


release_app = typer.Typer(help="Manage CI releases")
app.add_typer(release_app, name="release")


@release_app.command("cleanup")
def release_cleanup(
    keep: Annotated[
        int | None,
        typer.Option("--keep", "-k", min=0, help="CI releases to keep (defaults to AKB_KEEP_RELEASES)"),
    ] = None,
) -> None:
    """Delete old CI releases and their tags."""
    from android_kernel_builder.publish.release import cleanup_old_releases

    settings = get_settings()
    if not settings.github_token or not settings.github_repository:
        console.print("[red]GITHUB_TOKEN and GITHUB_REPOSITORY must be set[/red]")
        raise typer.Exit(code=1)

    deleted = cleanup_old_releases(
        settings.github_token,
        settings.github_repository,
        keep if keep is not None else settings.keep_releases,
        api_url=settings.github_api_url,
    )
    if deleted:
        console.print(f"[green]✓ Deleted {len(deleted)} release(s)[/green]")
        for tag in deleted:
            console.print(f"  {tag}")
    else:
        console.print("No releases deleted")


@app.command()
def clean(
    kernel_dir: Annotated[Path, typer.Option("--kernel-dir", help="Kernel source directory")] = Path("kernel"),
    build_dir: Annotated[Path, typer.Option("--build-dir", help="Build output directory")] = Path("build"),
    toolchains: Annotated[bool, typer.Option("--toolchains", help="Also remove toolchains")] = False,
    ccache: Annotated[bool, typer.Option("--ccache", help="Also clear the ccache")] = False,
    env: Annotated[bool, typer.Option("--env", help="Also unset build environment variables")] = False,
) -> None:
    """Remove sources, outputs and temporary files of a run."""
    from android_kernel_builder.clean import CleanOptions, clean_all

    settings = get_settings()
    workspace = settings.workspace_dir
    clean_all(
        CleanOptions(
            kernel_dir=kernel_dir if kernel_dir.is_absolute() else workspace / kernel_dir,
            build_dir=build_dir if build_dir.is_absolute() else workspace / build_dir,
            work_dir=workspace,
            home=settings.home_dir,
            toolchains=toolchains,
            ccache=ccache,
            env=env,
        )
    )
    console.print("[green]✓ Cleaned[/green]")


if __name__ == "__main__":
    app()

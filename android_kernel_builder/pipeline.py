"""End-to-end kernel build pipeline.

Steps run strictly in sequence and stop at the first failure, except for
the ccache restore/save and cleanup steps which only log warnings.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from android_kernel_builder import actions
from android_kernel_builder.builds import cache as ccache
from android_kernel_builder.builds.diagnostics import LogAnalysis, analyze_build_errors
from android_kernel_builder.builds.runner import build_kernel, is_build_successful
from android_kernel_builder.clean import CleanOptions, clean_all
from android_kernel_builder.config import Settings
from android_kernel_builder.host import check_environment, detect_host_arch, install_dependencies, sudo_prefix
from android_kernel_builder.kernel.kconfig import apply_kernel_config
from android_kernel_builder.kernel.patches import (
    KernelSUOptions,
    setup_bbg,
    setup_kernelsu,
    setup_lxc,
    setup_nethunter,
    setup_rekernel,
)
from android_kernel_builder.kernel.source import (
    KernelSourceError,
    clone_kernel,
    clone_vendor,
    get_config_path,
    get_kernel_version,
    setup_mkdtboimg,
)
from android_kernel_builder.packaging.packager import package_kernel
from android_kernel_builder.process import CommandRunner
from android_kernel_builder.profile import BuildProfile
from android_kernel_builder.publish.artifacts import (
    ArtifactClient,
    DirectoryArtifactClient,
    log_artifacts,
    upload_artifacts,
)
from android_kernel_builder.publish.release import cleanup_old_releases, create_release
from android_kernel_builder.toolchain.service import setup_toolchains
from android_kernel_builder.types import (
    ArtifactConfig,
    BuildConfig,
    KernelVersion,
    PackageConfig,
    ReleaseConfig,
)

logger = logging.getLogger(__name__)

ERROR_MARKER = "have_error"
ARTIFACTS_DIR = "artifacts"


class PipelineError(Exception):
    """Raised when a pipeline step fails."""

    def __init__(
        self,
        message: str,
        code: str = "pipeline_error",
        analysis: LogAnalysis | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.analysis = analysis


@dataclass
class PipelineResult:
    """Outcome of a successful run.

    Attributes:
        kernel_version: Version of the built kernel.
        output: Packaged boot.img, flasher zip or build directory.
        artifact: Name of the uploaded CI artifact, if any.
        release_url: URL of the published release, if any.
    """

    kernel_version: KernelVersion
    output: Path
    artifact: str | None = None
    release_url: str | None = None


def _resolve(base: Path, path: Path) -> Path:
    return path if path.is_absolute() else base / path


def run_pipeline(
    profile: BuildProfile,
    settings: Settings,
    runner: CommandRunner | None = None,
    client: httpx.Client | None = None,
    artifact_client: ArtifactClient | None = None,
    cache_store: ccache.LocalCacheStore | None = None,
) -> PipelineResult:
    """Build, package and publish a kernel.

    Args:
        profile: Run inputs.
        settings: Application settings.
        runner: Command runner.
        client: HTTPX client used for downloads.
        artifact_client: CI artifact client; defaults to a directory under
            the workspace.
        cache_store: ccache archive store; defaults to the settings cache dir.

    Returns:
        PipelineResult describing the outputs.

    Raises:
        InputValidationError: If an input is rejected.
        PipelineError: If the defconfig is missing or the build fails.
        CommandError: If a setup step fails.
    """
    runner = runner or CommandRunner()
    owns_client = client is None
    client = client or httpx.Client(timeout=settings.download_timeout)
    try:
        return _run(profile, settings, runner, client, artifact_client, cache_store)
    finally:
        if owns_client:
            client.close()


def _run(
    profile: BuildProfile,
    settings: Settings,
    runner: CommandRunner,
    client: httpx.Client,
    artifact_client: ArtifactClient | None,
    cache_store: ccache.LocalCacheStore | None,
) -> PipelineResult:
    workspace = settings.workspace_dir
    home = settings.home_dir
    kernel_dir = _resolve(workspace, profile.kernel_dir)
    build_dir = _resolve(workspace, profile.build_dir)
    arch = profile.arch.value
    features = profile.features

    if profile.check_environment:
        manager = check_environment()
    else:
        manager = None

    if profile.install_dependencies:
        install_dependencies(runner, manager)

    if profile.ccache:
        ccache.setup_ccache_symlinks()
        ccache.add_ccache_to_path()

    with actions.group("Setting up toolchains"):
        toolchain = setup_toolchains(runner, client, profile.toolchain.to_config(), home)

    with actions.group("Cloning kernel source"):
        clone_kernel(runner, profile.kernel_url, profile.kernel_branch, profile.depth, kernel_dir)
        if profile.vendor:
            if not profile.vendor_url:
                raise PipelineError("vendor-url is required when vendor is set", code="missing_vendor_url")
            clone_vendor(
                runner,
                profile.vendor_url,
                profile.vendor_branch or profile.kernel_branch,
                profile.depth,
                _resolve(workspace, profile.vendor_dir),
                kernel_dir,
                workspace,
            )

    version = get_kernel_version(kernel_dir)
    config_path = get_config_path(kernel_dir, arch, profile.config)
    if not config_path.is_file():
        raise KernelSourceError(f"Defconfig not found: {config_path}", code="no_defconfig")

    apply_kernel_config(config_path, lto=not features.disable_lto, kvm=features.kvm)
    setup_mkdtboimg(runner, kernel_dir, settings.resources_dir, sudo=sudo_prefix())

    with actions.group("Applying patches"):
        if features.kernelsu:
            setup_kernelsu(
                runner,
                client,
                kernel_dir,
                config_path,
                KernelSUOptions(
                    version=features.ksu_version,
                    lkm=features.ksu_lkm,
                    other=features.ksu_other,
                    url=features.ksu_url,
                ),
                version,
                settings.resources_dir,
            )
        if features.nethunter:
            setup_nethunter(runner, kernel_dir, config_path, settings.resources_dir, patch=features.nethunter_patch)
        if features.lxc:
            setup_lxc(runner, kernel_dir, config_path, settings.resources_dir, patch=features.lxc_patch)
        if features.rekernel:
            setup_rekernel(runner, kernel_dir, settings.resources_dir)
        if features.bbg:
            setup_bbg(runner, client, kernel_dir, config_path)

    store = cache_store or ccache.LocalCacheStore(settings.cache_dir)
    run_id = settings.github_sha or str(int(time.time()))
    if profile.ccache:
        ccache.setup_ccache(runner, store, profile.config, home, settings.ccache_max_size, run_id)
        # Consumed by an actions/cache step of the workflow
        actions.set_output("ccache-dir", str(ccache.get_ccache_dir(home)))
        actions.set_output("ccache-key", ccache.cache_key(profile.config, run_id))
        actions.set_output("ccache-restore-key", ccache.restore_prefix(profile.config))

    build_config = BuildConfig(
        kernel_dir=kernel_dir,
        arch=arch,
        config=profile.config,
        toolchain=toolchain,
        extra_make_args=list(profile.extra_make_args),
        use_ccache=profile.ccache,
    )
    with actions.group("Building kernel"):
        built = build_kernel(runner, build_config, home=home, timeout=settings.build_timeout)
    built = built and is_build_successful(kernel_dir, arch)

    if not built:
        analysis = analyze_build_errors(kernel_dir, workspace / ERROR_MARKER)
        if profile.ccache:
            ccache.save_ccache(store, profile.config, home, run_id)
        raise PipelineError(
            f"Kernel build failed with {analysis.error_count} detected error(s)",
            code="build_failed",
            analysis=analysis,
        )

    if profile.ccache:
        ccache.show_ccache_stats(runner)
        ccache.save_ccache(store, profile.config, home, run_id)

    with actions.group("Packaging kernel"):
        output = package_kernel(
            runner,
            client,
            PackageConfig(
                kernel_dir=kernel_dir,
                arch=arch,
                anykernel3=profile.anykernel3,
                build_dir=build_dir,
                work_dir=workspace,
                bootimg_url=profile.bootimg_url,
                anykernel3_url=profile.anykernel3_url,
                release=profile.release,
            ),
            detect_host_arch(),
            settings.resources_dir,
            settings.magiskboot_url,
        )
    log_artifacts(build_dir)
    actions.set_output("build-dir", str(build_dir))

    result = PipelineResult(kernel_version=version, output=output)
    if profile.release:
        result.release_url = create_release(
            ReleaseConfig(
                token=settings.github_token or "",
                build_dir=build_dir,
                kernel_url=profile.kernel_url,
                kernel_branch=profile.kernel_branch,
                config=profile.config,
                arch=arch,
                features=features.to_flags(),
                repository=settings.github_repository,
                sha=settings.github_sha,
            ),
            api_url=settings.github_api_url,
        )
        actions.set_output("release-url", result.release_url)
        keep =profile.keep_releases if profile.keep_releases is not None else settings.keep_releases
        if keep > 0 and settings.github_repository:
            cleanup_old_releases(
                settings.github_token or "",
                settings.github_repository,
                keep,
                api_url=settings.github_api_url,
            )
    else:
        uploader = artifact_client or DirectoryArtifactClient(workspace / ARTIFACTS_DIR)
        result.artifact = upload_artifacts(
            ArtifactConfig(build_dir=build_dir, anykernel3=profile.anykernel3, release=profile.release),
            uploader,
        )
        if result.artifact:
            actions.set_output("artifact-name", result.artifact)
            actions.set_output("artifact-path", str(build_dir))

    if profile.cleanup:
        clean_all(
            CleanOptions(kernel_dir=kernel_dir, build_dir=build_dir, work_dir=workspace, home=home),
            runner,
        )

    return result


__all__ = ["PipelineError", "PipelineResult", "run_pipeline"]

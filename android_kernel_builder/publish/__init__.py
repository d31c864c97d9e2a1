"""Publishing module.

This module handles:
- Uploading the build directory as a CI artifact
- Publishing GitHub releases and pruning old ones
"""

from android_kernel_builder.publish.artifacts import ArtifactError, upload_artifacts
from android_kernel_builder.publish.release import ReleaseError, cleanup_old_releases, create_release

__all__ = [
    "ArtifactError",
    "ReleaseError",
    "cleanup_old_releases",
    "create_release",
    "upload_artifacts",
]

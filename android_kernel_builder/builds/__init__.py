"""Kernel build module.

This module handles:
- Filtering user supplied make arguments
- Running the kernel build
- ccache setup and persistence
- Build log analysis
"""

# Access submodules directly, e.g. android_kernel_builder.builds.runner

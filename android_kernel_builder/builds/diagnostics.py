"""Build log analysis.

Scans a kernel build log line by line against an ordered table of
patterns. The first matching rule classifies a line; lines matching no
rule are ignored. Every classified line becomes a numbered diagnostic with
a short hint on how to fix it.

When at least one error is found an empty ``have_error`` marker file is
written so later workflow steps can react to the failure.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MARKER_NAME = "have_error"


class LogNotFoundError(FileNotFoundError):
    """Raised when the build log to analyze does not exist."""

    def __init__(self, message: str, code: str = "log_not_found") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ErrorRule:
    """A log pattern with the category and hint reported for it."""

    pattern: re.Pattern[str]
    category: str
    suggestion: str


def _rule(pattern: str, category: str, suggestion: str) -> ErrorRule:
    return ErrorRule(re.compile(pattern, re.IGNORECASE), category, suggestion)


# Order matters: specific rules come before broader ones and the generic
# "error:" rule is always last.
ERROR_RULES: tuple[ErrorRule, ...] = (
    _rule(
        r"Can't find default configuration",
        "Missing Defconfig",
        "Check the defconfig name and that it exists under arch/<arch>/configs.",
    ),
    _rule(
        r"openssl/\w+\.h: No such file or directory",
        "Missing Host Library",
        "Install the OpenSSL development headers (libssl-dev / openssl).",
    ),
    _rule(
        r"fatal error: .*: No such file or directory|No such file or directory",
        "Missing Header or Source File",
        "A header or source file is missing. Check the include paths and "
        "that all submodules and vendor trees were cloned.",
    ),
    _rule(
        r"No rule to make target",
        "Missing Make Target",
        "A file referenced by a Makefile is missing, or the defconfig enables "
        "a driver whose sources are not in the tree.",
    ),
    _rule(
        r"undefined reference to",
        "Link Error",
        "A symbol is used but not defined. Enable the config option that "
        "builds it or fix the missing implementation.",
    ),
    _rule(
        r"multiple definition of",
        "Multiple Definition",
        "A symbol is defined more than once. Mark shared definitions static "
        "or extern, or build with -fcommon for old trees.",
    ),
    _rule(
        r"modpost: .*undefined!",
        "Module Symbol Undefined",
        "A module uses a symbol that is not exported. Export it or build the "
        "provider into the kernel.",
    ),
    _rule(
        r"unrecognized command[- ]line option|unknown argument:|unsupported option",
        "Compiler Option Not Supported",
        "The compiler does not understand a flag. Use a matching toolchain "
        "version or drop the flag from the Makefile.",
    ),
    _rule(
        r"implicit declaration of function",
        "Implicit Function Declaration",
        "Include the header that declares the function or add a prototype.",
    ),
    _rule(
        r"undeclared \(first use in this function\)|use of undeclared identifier",
        "Undeclared Identifier",
        "An identifier is used before being declared. Check headers and "
        "config-dependent #ifdef blocks.",
    ),
    _rule(
        r"unknown type name",
        "Unknown Type Name",
        "A type is used without its definition. Include the right header.",
    ),
    _rule(
        r"incompatible pointer type",
        "Incompatible Pointer Types",
        "A pointer of the wrong type is passed or assigned. Fix the cast or "
        "the function signature.",
    ),
    _rule(
        r"conflicting types for",
        "Conflicting Types",
        "A declaration does not match an earlier one. Make the prototypes "
        "agree.",
    ),
    _rule(
        r"redefinition of",
        "Redefinition",
        "Something is defined twice. Check for duplicated code from patches "
        "and missing include guards.",
    ),
    _rule(
        r"has no member named",
        "Missing Struct Member",
        "A struct field does not exist in this kernel version. The patch or "
        "driver targets a different kernel.",
    ),
    _rule(
        r"too (many|few) arguments to function",
        "Wrong Number of Arguments",
        "A function call does not match its prototype. The API changed "
        "between kernel versions.",
    ),
    _rule(
        r"division by zero",
        "Division by Zero",
        "A constant expression divides by zero. Check config-dependent "
        "macros used as divisors.",
    ),
    _rule(
        r"null pointer dereference",
        "Null Pointer Dereference",
        "A pointer may be NULL where it is dereferenced. Add a check.",
    ),
    _rule(
        r"array subscript .* (outside|above|below) array bounds|index .* out of bounds",
        "Array Index Out of Bounds",
        "An array is indexed outside its size. Check the index and the array "
        "length.",
    ),
    _rule(
        r"uninitiali[sz]ed",
        "Uninitialized Variable",
        "A variable may be used before it is set. Initialize it.",
    ),
    _rule(
        r"deprecated",
        "Deprecated API Usage",
        "A deprecated API is used. Port the code or disable the warning for "
        "this file.",
    ),
    _rule(
        r"unknown mnemonic|selected processor does not support|junk at end of line",
        "Assembler Error",
        "The assembler rejects an instruction. Use the integrated assembler "
        "of a matching Clang or a matching GNU binutils.",
    ),
    _rule(
        r"python2(\.\d+)?: (command )?not found|Missing parentheses in call to 'print'",
        "Python 2 Required",
        "A build script needs Python 2. Install python2 or port the script.",
    ),
    _rule(
        r"(command )?not found$",
        "Tool Not Found",
        "A build tool is missing. Check the toolchain paths and the "
        "CROSS_COMPILE prefixes.",
    ),
    _rule(
        r"Killed signal terminated program|out of memory|virtual memory exhausted",
        "Out of Memory",
        "The compiler ran out of memory. Lower the job count or add swap.",
    ),
    _rule(
        r"No space left on device",
        "Disk Full",
        "The runner ran out of disk space. Clean up or use a shallow clone.",
    ),
    _rule(
        r"Kconfig.*(syntax error|unknown statement|can't open file)",
        "Kconfig Error",
        "A Kconfig file is broken, usually by a patch that did not apply "
        "cleanly.",
    ),
    _rule(
        r"\bdtc\b.*\berror\b|\.dtsi?:\d+.*syntax error",
        "Device Tree Error",
        "A device tree source does not compile. Check the .dts includes.",
    ),
    _rule(
        r"Permission denied",
        "Permission Denied",
        "A file is not readable or executable. Check file modes in the tree "
        "and the toolchain.",
    ),
    _rule(
        r"-Werror|warnings being treated as errors",
        "Warning Treated as Error",
        "A warning is promoted to an error. Fix the warning or drop -Werror "
        "(CONFIG_CC_WERROR) for this build.",
    ),
    _rule(
        r"\berror:",
        "Compilation Error",
        "See the log line for details.",
    ),
)


@dataclass
class Diagnostic:
    """A classified log line.

    Attributes:
        number: 1-based position among the diagnostics of a log.
        line_number: 1-based line number in the log.
        category: Category of the matching rule.
        suggestion: Hint of the matching rule.
        line: The log line itself.
    """

    number: int
    line_number: int
    category: str
    suggestion: str
    line: str


@dataclass
class LogAnalysis:
    """Result of analyzing a build log."""

    log_path: Path
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.diagnostics)

    @property
    def has_errors(self) -> bool:
        return bool(self.diagnostics)


def classify_line(line: str) -> ErrorRule | None:
    """Return the first rule matching a log line, or None."""
    for rule in ERROR_RULES:
        if rule.pattern.search(line):
            return rule
    return None


def analyze_errors(
    log_path: Path,
    marker_path: Path | None = Path(DEFAULT_MARKER_NAME),
) -> LogAnalysis:
    """Analyze a build log.

    Args:
        log_path: Log file to scan.
        marker_path: Marker file written (empty) when errors are found;
            None disables the marker.

    Returns:
        LogAnalysis with one diagnostic per classified line.

    Raises:
        LogNotFoundError: If the log file does not exist.
    """
    if not log_path.is_file():
        logger.error("Log file %s does not exist", log_path)
        raise LogNotFoundError(f"Log file {log_path} does not exist")

    logger.info("Analyzing log file: %s", log_path)
    analysis = LogAnalysis(log_path=log_path)

    with log_path.open(encoding="utf-8", errors="replace") as f:
        for line_number, raw_line in enumerate(f, start=1):
            line = raw_line.rstrip("\r\n")
            rule = classify_line(line)
            if rule is None:
                continue
            diagnostic = Diagnostic(
                number=analysis.error_count + 1,
                line_number=line_number,
                category=rule.category,
                suggestion=rule.suggestion,
                line=line.strip(),
            )
            analysis.diagnostics.append(diagnostic)
            logger.info(
                "Error #%d: %s (line %d)",
                diagnostic.number,
                diagnostic.category,
                diagnostic.line_number,
            )
            logger.info("  %s", diagnostic.line)
            logger.info("  Suggestion: %s", diagnostic.suggestion)

    if analysis.has_errors:
        logger.info("Found %d error(s) in %s", analysis.error_count, log_path.name)
        if marker_path is not None:
            marker_path.write_text("")
    else:
        logger.info("No errors found")

    return analysis


def analyze_build_errors(
    kernel_dir: Path,
    marker_path: Path | None = Path(DEFAULT_MARKER_NAME),
) -> LogAnalysis:
    """Analyze ``out/build.log`` of a kernel tree.

    A missing log is reported as a warning and yields an empty analysis.

    Args:
        kernel_dir: Kernel source directory.
        marker_path: See :func:`analyze_errors`.

    Returns:
        LogAnalysis of the build log.
    """
    log_path = kernel_dir / "out" / "build.log"
    if not log_path.is_file():
        logger.warning("Build log not found: %s", log_path)
        return LogAnalysis(log_path=log_path)
    return analyze_errors(log_path, marker_path)


__all__ = [
    "DEFAULT_MARKER_NAME",
    "Diagnostic",
    "ERROR_RULES",
    "ErrorRule",
    "LogAnalysis",
    "LogNotFoundError",
    "analyze_build_errors",
    "analyze_errors",
    "classify_line",
]

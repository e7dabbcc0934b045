"""SPDX license expression helpers.

Wraps the license-expression library to normalize expressions, split them
into single licenses, and map free-text declared licenses (as found in
package metadata) to SPDX identifiers.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Optional

from license_expression import get_spdx_licensing

logger = logging.getLogger(__name__)

SPDX = get_spdx_licensing()

# Expression used by curations and concluded licenses to state "no license".
NONE = "NONE"
NOASSERTION = "NOASSERTION"

# Common license aliases found in package metadata
LICENSE_MAP = {
    "Apache 2.0": "Apache-2.0",
    "Apache License 2.0": "Apache-2.0",
    "Apache Software License": "Apache-2.0",
    "Apache License, Version 2.0": "Apache-2.0",
    "MIT License": "MIT",
    "The MIT License": "MIT",
    "BSD License": "BSD-3-Clause",
    "BSD 3-Clause License": "BSD-3-Clause",
    "BSD 2-Clause License": "BSD-2-Clause",
    "GNU General Public License v3": "GPL-3.0-only",
    "GNU General Public License v3 (GPLv3)": "GPL-3.0-only",
    "GNU General Public License v2": "GPL-2.0-only",
    "GNU Lesser General Public License v3": "LGPL-3.0-only",
    "Mozilla Public License 2.0": "MPL-2.0",
    "ISC License": "ISC",
    "Python Software Foundation License": "PSF-2.0",
}

# Common SPDX IDs for case-insensitive matching
COMMON_SPDX = [
    "MIT", "Apache-2.0", "GPL-3.0", "GPL-2.0", "LGPL-3.0",
    "BSD-3-Clause", "BSD-2-Clause", "ISC", "MPL-2.0", "PSF-2.0",
]


@lru_cache(maxsize=4096)
def _parse(expression: str):
    try:
        return SPDX.parse(expression, validate=False)
    except Exception as e:
        logger.debug("Could not parse license expression '%s': %s", expression, e)
        return None


def is_valid_expression(expression: str) -> bool:
    """Return True if the expression is NONE/NOASSERTION or parses as SPDX."""
    expression = expression.strip()
    if expression in (NONE, NOASSERTION):
        return True
    return bool(expression) and _parse(expression) is not None


def normalize_expression(expression: str) -> str:
    """Return the normalized form of a license expression.

    Unparseable expressions are returned stripped but otherwise unchanged.
    """
    expression = expression.strip()
    parsed = _parse(expression) if expression else None
    return str(parsed) if parsed is not None else expression


def decompose(expression: str) -> list[str]:
    """Split an expression into its single licenses.

    A license with an exception ("GPL-2.0-only WITH Classpath-exception-2.0")
    stays one license. Unparseable expressions are returned as a single item.

    Args:
        expression: SPDX license expression.

    Returns:
        Sorted list of distinct single license expressions.
    """
    expression = expression.strip()
    if not expression:
        return []

    parsed = _parse(expression)
    if parsed is None:
        return [expression]

    symbols = SPDX.license_symbols(parsed, unique=True, decompose=False)
    return sorted({str(symbol) for symbol in symbols}) or [expression]


@lru_cache(maxsize=1024)
def map_declared_license(license_text: str) -> Optional[str]:
    """Map a declared license string to an SPDX expression.

    Args:
        license_text: Raw license string from package metadata.

    Returns:
        SPDX expression, or None if the text could not be recognized.
    """
    license_text = license_text.strip()
    if not license_text or license_text.upper() == "UNKNOWN":
        return None

    if license_text in LICENSE_MAP:
        return LICENSE_MAP[license_text]

    parsed = _parse(license_text)
    if parsed is not None and not SPDX.unknown_license_keys(parsed):
        return str(parsed)

    # Try case-insensitive matching of common SPDX IDs
    license_upper = license_text.upper()
    squashed = license_upper.replace("-", "").replace(" ", "")
    for spdx_id in COMMON_SPDX:
        if spdx_id.upper() in license_upper or spdx_id.upper().replace("-", "") in squashed:
            return spdx_id

    logger.debug("Could not map declared license: %s", license_text)
    return None


@dataclass(frozen=True)
class ProcessedDeclaredLicense:
    """Outcome of mapping declared licenses to SPDX.

    Attributes:
        spdx_expression: All mapped licenses joined with AND, or None.
        mapped: Raw declared license to the SPDX expression it was mapped to.
        unmapped: Declared licenses that could not be mapped.
    """

    spdx_expression: Optional[str] = None
    mapped: dict[str, str] = field(default_factory=dict, hash=False)
    unmapped: frozenset[str] = frozenset()


class DeclaredLicenseProcessor:
    """Maps the free-text licenses declared in package metadata to SPDX."""

    def process(self, declared_licenses: Iterable[str]) -> ProcessedDeclaredLicense:
        mapped: dict[str, str] = {}
        unmapped: set[str] = set()

        for declared in declared_licenses:
            spdx = map_declared_license(declared)
            if spdx is None:
                unmapped.add(declared)
            else:
                mapped[declared] = spdx

        expressions = sorted(set(mapped.values()))
        if len(expressions) > 1:
            expression = " AND ".join(
                f"({e})" if " " in e and " WITH " not in e else e for e in expressions
            )
        else:
            expression = expressions[0] if expressions else None

        return ProcessedDeclaredLicense(
            spdx_expression=expression,
            mapped=mapped,
            unmapped=frozenset(unmapped),
        )

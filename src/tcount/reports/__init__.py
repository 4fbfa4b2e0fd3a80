"""
tcount Reports Package (Imperative Shell)

Orchestrates data fetching, plot generation, and HTML output.
No analysis logic lives here; this package reads stored counts through
``tcount.data.manager`` and draws them with ``tcount.plotting``.

Modules:
    generators: ReportGenerator class and generate_reports() convenience
                function for producing HTML report files per count.
"""

from .generators import (
    ReportGenerator,
    generate_reports,
)

__all__ = [
    'ReportGenerator',
    'generate_reports',
]

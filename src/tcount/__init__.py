"""
tcount - Traffic count binning and data checks

A Python package that bins individual-vehicle traffic counts into
15-minute class and speed counts and checks stored counts for anomalies,
using the Functional Core, Imperative Shell architecture.

Structure:
- analysis/ : Functional Core (binning, aggregation, data-check rules)
- data/     : Imperative Shell (files, SQLite, import and check engines)
- plotting/ : Class and speed distribution figures
- reports/  : HTML report output
"""

__version__ = "0.1.0"
